"""
All the structures and data manipulations for the API objects.

Used by the clients to build the URLs and to wrap the decoded payloads,
and by the reflectors to key and navigate the mirrored objects.

All the functions are purely data-manipulative and computational.
No external calls or any i/o activities are done here.
"""
