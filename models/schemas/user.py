from marshmallow import Schema, fields


class UserOutSchema(Schema):
    user_id = fields.Integer(allow_none=False)
    email = fields.String(allow_none=False)
    username = fields.String(allow_none=False)
    role = fields.Method("get_role")

    def get_role(self, obj):
        return getattr(obj, "role_name", None)
