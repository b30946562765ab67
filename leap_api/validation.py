import re
from typing import Dict, Optional

from leap_api.errors import InvalidSubmissionError

EMAIL_REGEX = re.compile(
    r"^[a-zA-Z0-9.!#$%&'*+/=?^_`{|}~-]+@[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?"
    r"(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
)
PHONE_REGEX = re.compile(
    r"^[\+]?[(]?[0-9]{1,4}[)]?[-\s\.]?[(]?[0-9]{1,4}[)]?[-\s\.]?[0-9]{1,9}[-\s\.]?[0-9]{1,9}$"
)


def validate_email(email: Optional[str]) -> Optional[str]:
    """Returns an error message, or None when the address is acceptable."""
    if not email or not email.strip():
        return "Email is required"
    email = email.strip()
    if len(email) > 254:
        return "Email address is too long"
    if not EMAIL_REGEX.match(email):
        return "Please enter a valid email address"
    if ".." in email:
        return "Email address cannot contain consecutive dots"
    if email.startswith(".") or email.endswith("."):
        return "Email address cannot start or end with a dot"
    return None


def validate_phone(phone: Optional[str]) -> Optional[str]:
    """Phone is optional; an empty value is valid."""
    if not phone or not phone.strip():
        return None
    digit_count = len(re.sub(r"\D", "", phone))
    if digit_count < 7 or digit_count > 15:
        return "Please enter a valid phone number (7-15 digits)"
    if not PHONE_REGEX.match(phone):
        return "Please enter a valid phone number"
    return None


def validate_contact(full_name: Optional[str], email: Optional[str], phone: Optional[str] = None) -> None:
    """Raises InvalidSubmissionError listing every invalid contact field."""
    field_errors: Dict[str, str] = {}
    if not full_name or not full_name.strip():
        field_errors["full_name"] = "Name is required"
    email_error = validate_email(email)
    if email_error:
        field_errors["email"] = email_error
    phone_error = validate_phone(phone)
    if phone_error:
        field_errors["phone"] = phone_error
    if field_errors:
        raise InvalidSubmissionError("Contact details are invalid.", field_errors=field_errors)
