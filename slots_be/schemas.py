from marshmallow import Schema, fields, validate, ValidationError, pre_load
from marshmallow_sqlalchemy import SQLAlchemyAutoSchema, auto_field

from .models import User, Deposit, SlotSpin


def validate_username(username):
    """Usernames are case-sensitive and only need to be non-empty once trimmed."""
    if not username or not username.strip():
        raise ValidationError('Username is required.')
    if len(username.strip()) > 50:
        raise ValidationError('Username must be at most 50 characters.')
    return username


class StrictInteger(fields.Integer):
    """Integer field that refuses floats, numeric strings and booleans."""
    def _deserialize(self, value, attr, data, **kwargs):
        if isinstance(value, bool):
            raise self.make_error("invalid", input=value)
        return super()._deserialize(value, attr, data, **kwargs)


# --- User Schemas ---
class UserSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = User

    id = auto_field(dump_only=True)
    username = auto_field()
    balance = auto_field(dump_only=True, metadata={"description": "Balance in Satoshis"})
    created_at = auto_field(dump_only=True)
    last_login_at = auto_field(dump_only=True)


class LoginSchema(Schema):
    username = fields.Str(required=True, validate=validate_username)

    @pre_load
    def strip_username(self, data, **kwargs):
        if isinstance(data, dict) and isinstance(data.get('username'), str):
            data = dict(data, username=data['username'].strip())
        return data


# --- Deposit Schemas ---
class DepositRequestSchema(Schema):
    amount = StrictInteger(required=True, strict=True, validate=validate.Range(min=1))


class PaymentCheckSchema(Schema):
    payment_id = fields.Str(required=True, validate=validate.Length(min=1, max=128))


class DepositSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = Deposit
        include_fk = True


# --- Spin Schemas ---
class SpinRequestSchema(Schema):
    bet_credits = StrictInteger(strict=True, load_default=None, validate=validate.Range(min=1))
    sats_per_credit = StrictInteger(strict=True, load_default=None, validate=validate.Range(min=1))


class WinLineSchema(Schema):
    line_id = fields.Str()
    name = fields.Str()
    coords = fields.List(fields.List(fields.Int()))
    symbols = fields.List(fields.Str())
    key = fields.Str()
    credits = fields.Int()


class SlotSpinSchema(SQLAlchemyAutoSchema):
    class Meta:
        model = SlotSpin
        include_fk = True

    winning_lines = fields.List(fields.Nested(WinLineSchema))
