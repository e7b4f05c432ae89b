"""
All the routines to talk to the Kubernetes API.

This library is supposed to be mocked when the mocked API is needed,
and only the high-level logic has to be tested, not the API calls themselves.

Every verb is a plain coroutine function in its own module (fetching, creating,
updating, patching, deleting, watching), all on top of the `api` module, which
owns the retries and the error mapping, and of `auth.APIContext`, which owns
the aiohttp session with the TLS/proxy/authentication setup.

Currently, all the routines use ``aiohttp``. Eventually, it can be replaced
with anything else: the rest of the package only sees our own errors and structs.
"""
