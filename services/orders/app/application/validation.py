"""
Input checks that run before anything touches the database.

Validators return a dict of field -> message key, empty when the input is
valid; callers raise the first key as a ValidationError.
"""
import re
from typing import Optional

from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as SchemaValidationError

from app.domain.errors import ValidationError
from app.domain.status import OrderStatus, PaymentMethod
from .schemas import CheckoutRequest, OrderStatusUpdate, ShippingAddressSnapshot

GOVERNORATES = (
    "Baghdad", "Basra", "Nineveh", "Erbil", "Sulaymaniyah", "Dohuk",
    "Anbar", "Diyala", "Saladin", "Kirkuk", "Najaf", "Karbala",
    "Wasit", "Maysan", "Dhi Qar", "Muthanna", "Qadisiyyah", "Babil",
)

PHONE_REGEX_IQ = re.compile(r"^(?:\+?964|0)?7[0-9]{9}$")
COUPON_CODE_REGEX = re.compile(r"^[A-Z0-9]{4,20}$")
EMAIL_ADAPTER = TypeAdapter(EmailStr)


def is_valid_governorate(value: str) -> bool:
    return value in GOVERNORATES


def is_valid_email(value: str) -> bool:
    try:
        EMAIL_ADAPTER.validate_python(value)
    except SchemaValidationError:
        return False
    return True


def normalize_iraq_phone(phone: Optional[str]) -> str:
    """Returns +9647XXXXXXXXX, or '' when the number is not an Iraqi mobile."""
    if not phone:
        return ""
    digits = re.sub(r"\D", "", phone)
    if digits.startswith("964"):
        digits = digits[3:]
    if digits.startswith("0"):
        digits = digits[1:]
    if not digits.startswith("7"):
        return ""
    return f"+964{digits[:10]}"


def normalize_coupon_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def validate_shipping_info(
    address: ShippingAddressSnapshot,
    guest_email: Optional[str] = None,
    is_guest: bool = False,
) -> dict[str, str]:
    errors: dict[str, str] = {}

    if not address.recipient_name.strip():
        errors["recipient_name"] = "checkout.validation.recipientRequired"
    if not address.address_line1.strip():
        errors["address_line1"] = "checkout.validation.streetRequired"
    if not address.city.strip():
        errors["city"] = "checkout.validation.cityRequired"
    if not is_valid_governorate(address.governorate):
        errors["governorate"] = "checkout.validation.governorateRequired"

    if not address.phone or not address.phone.strip():
        errors["phone"] = "auth.validation.phoneRequired"
    else:
        normalized = normalize_iraq_phone(address.phone)
        if not normalized or not PHONE_REGEX_IQ.match(normalized):
            errors["phone"] = "auth.validation.phoneInvalid"

    if is_guest:
        email = (guest_email or "").strip()
        if not email:
            errors["email"] = "checkout.validation.emailRequired"
        elif not is_valid_email(email):
            errors["email"] = "checkout.validation.emailInvalid"

    if {"recipient_name", "address_line1", "city", "governorate"} & errors.keys():
        errors = {"address": "checkout.validation.addressRequired", **errors}

    return errors


def validate_payment_method(payment_method: Optional[str]) -> dict[str, str]:
    if not payment_method:
        return {"payment_method": "checkout.validation.paymentRequired"}
    if payment_method not in {m.value for m in PaymentMethod}:
        return {"payment_method": "checkout.validation.paymentInvalid"}
    return {}


def validate_checkout_data(data: CheckoutRequest, is_guest: bool) -> None:
    errors = validate_shipping_info(data.shipping_address, data.guest_email, is_guest)
    errors.update(validate_payment_method(data.payment_method))
    if errors:
        raise ValidationError(next(iter(errors.values())))


def validate_coupon_code(code: Optional[str]) -> str:
    """Returns the normalized code or raises the invalid-code error."""
    normalized = normalize_coupon_code(code)
    if not COUPON_CODE_REGEX.match(normalized):
        raise ValidationError("checkout.coupon.invalidCode")
    return normalized


def validate_order_update(update: OrderStatusUpdate, current_status: Optional[str] = None) -> None:
    """Tracking details are required when an order enters shipped, not when it stays there."""
    errors: dict[str, str] = {}

    if update.status not in {s.value for s in OrderStatus}:
        errors["status"] = "admin.validation.statusInvalid"

    if update.status == OrderStatus.SHIPPED.value and current_status != OrderStatus.SHIPPED.value:
        if not (update.tracking_number or "").strip():
            errors["tracking_number"] = "admin.validation.trackingRequired"
        if not (update.carrier or "").strip():
            errors["carrier"] = "admin.validation.carrierRequired"

    if errors:
        raise ValidationError(next(iter(errors.values())))
