# responses.py


def success(data=None, meta: dict | None = None) -> dict:
    body = {"success": True, "data": data}
    if meta is not None:
        body["meta"] = meta
    return body
