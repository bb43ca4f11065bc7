"""
Input validation tests: shipping info, payment method, coupon codes, admin updates
"""

import pytest

from app.application.schemas import OrderStatusUpdate, ShippingAddressSnapshot
from app.application.validation import (
    normalize_iraq_phone, validate_checkout_data, validate_coupon_code, validate_order_update,
    validate_payment_method, validate_shipping_info,
)
from app.domain.errors import ValidationError
from factories import address, checkout_request


class TestShippingInfo:
    def test_valid_address_has_no_errors(self):
        assert validate_shipping_info(ShippingAddressSnapshot(**address())) == {}

    def test_missing_street_reports_address_first(self):
        errors = validate_shipping_info(ShippingAddressSnapshot(**address(address_line1="  ")))
        assert list(errors)[0] == "address"
        assert errors["address_line1"] == "checkout.validation.streetRequired"

    def test_unknown_governorate(self):
        errors = validate_shipping_info(ShippingAddressSnapshot(**address(governorate="Atlantis")))
        assert errors["governorate"] == "checkout.validation.governorateRequired"

    def test_phone_required_and_checked(self):
        missing = validate_shipping_info(ShippingAddressSnapshot(**address(phone=None)))
        assert missing == {"phone": "auth.validation.phoneRequired"}
        invalid = validate_shipping_info(ShippingAddressSnapshot(**address(phone="12345")))
        assert invalid == {"phone": "auth.validation.phoneInvalid"}

    def test_guest_email_required(self):
        errors = validate_shipping_info(ShippingAddressSnapshot(**address()), None, is_guest=True)
        assert errors == {"email": "checkout.validation.emailRequired"}

    def test_guest_email_format(self):
        errors = validate_shipping_info(ShippingAddressSnapshot(**address()), "not-an-email", is_guest=True)
        assert errors == {"email": "checkout.validation.emailInvalid"}

    @pytest.mark.parametrize("email", ["guest@mail..com", "guest@@example.com", "guest@example", "gu est@example.com"])
    def test_malformed_guest_emails(self, email):
        errors = validate_shipping_info(ShippingAddressSnapshot(**address()), email, is_guest=True)
        assert errors == {"email": "checkout.validation.emailInvalid"}

    def test_well_formed_guest_email(self):
        assert validate_shipping_info(ShippingAddressSnapshot(**address()), " guest@example.com ", is_guest=True) == {}

    def test_signed_in_user_needs_no_email(self):
        assert validate_shipping_info(ShippingAddressSnapshot(**address()), None, is_guest=False) == {}


class TestPhoneNormalization:
    @pytest.mark.parametrize("raw", ["07701234567", "+9647701234567", "964 770 123 4567", "7701234567"])
    def test_iraqi_mobile_forms(self, raw):
        assert normalize_iraq_phone(raw) == "+9647701234567"

    def test_landline_rejected(self):
        assert normalize_iraq_phone("0112345678") == ""


class TestCheckoutData:
    def test_payment_method_must_be_cod(self):
        assert validate_payment_method(None) == {"payment_method": "checkout.validation.paymentRequired"}
        assert validate_payment_method("card") == {"payment_method": "checkout.validation.paymentInvalid"}
        assert validate_payment_method("cod") == {}

    def test_first_error_key_is_raised(self):
        request = checkout_request(shipping_address=address(recipient_name=""), payment_method="card")
        with pytest.raises(ValidationError) as exc:
            validate_checkout_data(request, is_guest=False)
        assert exc.value.key == "checkout.validation.addressRequired"


class TestCouponCode:
    def test_code_is_normalized(self):
        assert validate_coupon_code("  save10 ") == "SAVE10"

    @pytest.mark.parametrize("code", ["", "AB", "SAVE-10", "X" * 21])
    def test_malformed_codes(self, code):
        with pytest.raises(ValidationError) as exc:
            validate_coupon_code(code)
        assert exc.value.key == "checkout.coupon.invalidCode"


class TestOrderUpdate:
    def test_unknown_status(self):
        with pytest.raises(ValidationError) as exc:
            validate_order_update(OrderStatusUpdate(status="lost"))
        assert exc.value.key == "admin.validation.statusInvalid"

    def test_entering_shipped_needs_tracking_and_carrier(self):
        with pytest.raises(ValidationError) as exc:
            validate_order_update(OrderStatusUpdate(status="shipped", carrier="DHL"), current_status="confirmed")
        assert exc.value.key == "admin.validation.trackingRequired"

        with pytest.raises(ValidationError) as exc:
            validate_order_update(OrderStatusUpdate(status="shipped", tracking_number="TRK1"),
                                  current_status="confirmed")
        assert exc.value.key == "admin.validation.carrierRequired"

    def test_staying_shipped_needs_nothing(self):
        validate_order_update(OrderStatusUpdate(status="shipped"), current_status="shipped")
