"""Session lifecycle, refresh token rotation and user data services."""
