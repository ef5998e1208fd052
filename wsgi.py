import os

_FALSY = {"0", "false", "off", "no"}


def _gevent_patch_kwargs() -> dict[str, bool]:
    """Patch threads too unless GEVENT_PATCH_THREADS opts out.

    The database gateway shares one reconnect between concurrent requests;
    with threads unpatched it falls back to gevent's own events.
    """
    env_value = os.environ.get("GEVENT_PATCH_THREADS", "")
    if env_value.strip().lower() in _FALSY:
        return {"thread": False, "threading": False}
    return {}


# Patch before the app imports sockets, locks or database drivers.
from gevent import monkey  # noqa: E402

monkey.patch_all(**_gevent_patch_kwargs())

from shopledger import create_app  # noqa: E402

app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 5000)), debug=bool(app.config.get("DEBUG")))
