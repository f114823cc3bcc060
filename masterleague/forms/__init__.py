from werkzeug.datastructures import MultiDict


def json_formdata(payload):
    """
    Turn a flat JSON object into form data for WTForms.

    Values are passed as strings so IntegerField rejects floats and booleans
    the same way it rejects other non-integer input. Nulls count as missing.
    """
    formdata = MultiDict()
    for key, value in (payload or {}).items():
        if value is None or isinstance(value, (dict, list)):
            continue
        if isinstance(value, bool):
            value = "true" if value else "false"
        formdata.add(key, str(value))
    return formdata


def bind_json_form(form_class, payload, **kwargs):
    """Instantiate a form from a JSON payload with CSRF disabled"""
    return form_class(formdata=json_formdata(payload), meta={"csrf": False}, **kwargs)
