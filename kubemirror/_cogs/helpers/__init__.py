"""
General-purpose helpers not related to the mirroring itself
(neither to the reflectors nor to the clients nor to the structs).

As a rule of thumb, helpers MUST be abstracted from the package
to such an extent that they could be extracted as reusable libraries.
"""
