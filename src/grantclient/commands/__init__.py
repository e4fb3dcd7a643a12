"""Built-in CLI sub-commands for grantclient.

* :mod:`~grantclient.commands.token` -- obtain a grant and print it.
* :mod:`~grantclient.commands.request` -- perform one authenticated request.

Each module exports a plain callback function registered directly on the
root app by :func:`grantclient.app.register_commands`.
"""
