"""Field filters shared by the JSON/form request forms."""


def as_text(value):
    """JSON bodies may carry numbers where a string field is expected."""
    if value is None or isinstance(value, str):
        return value
    return str(value)
