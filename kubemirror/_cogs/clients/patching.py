import enum
from typing import Any, Dict, Mapping, Optional, Sequence, Union

from kubemirror._cogs.clients import api, auth
from kubemirror._cogs.configs import configuration
from kubemirror._cogs.helpers import typedefs
from kubemirror._cogs.structs import bodies, references


class PatchStrategy(str, enum.Enum):
    MERGE = 'merge'
    JSON = 'json'
    STRATEGIC = 'strategic'
    APPLY = 'apply'


CONTENT_TYPES: Mapping[PatchStrategy, str] = {
    PatchStrategy.MERGE: 'application/merge-patch+json',
    PatchStrategy.JSON: 'application/json-patch+json',
    PatchStrategy.STRATEGIC: 'application/strategic-merge-patch+json',
    PatchStrategy.APPLY: 'application/apply-patch+yaml',  # JSON is a valid YAML.
}


async def patch_obj(
        *,
        context: auth.APIContext,
        settings: configuration.ClientSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        patch: Union[Mapping[str, Any], Sequence[Mapping[str, Any]]],
        strategy: Union[str, PatchStrategy] = PatchStrategy.MERGE,
        subresource: Optional[str] = None,
        field_manager: Optional[str] = None,
        force: bool = False,
        logger: typedefs.Logger,
) -> bodies.Body:
    """
    Patch a resource of specific kind.

    The patch strategies are:

    * ``merge`` (RFC-7386): a partial object; ``None`` values delete the fields.
    * ``json`` (RFC-6902): a list of operations (``{'op': ..., 'path': ...}``).
    * ``strategic``: as ``merge``, but the lists are merged by their keys.
    * ``apply``: the server-side apply; the field manager is required,
      and ``force`` takes the ownership of the conflicting fields.

    Returns the patched body as reported by the server.
    Raises `errors.APINotFoundError` if the object does not exist.
    """
    strategy = PatchStrategy(strategy)
    if strategy == PatchStrategy.JSON and isinstance(patch, Mapping):
        raise ValueError("JSON-patches must be lists of operations.")
    if strategy != PatchStrategy.JSON and not isinstance(patch, Mapping):
        raise ValueError(f"{strategy.value.capitalize()}-patches must be mappings.")
    if strategy == PatchStrategy.APPLY and not field_manager:
        raise ValueError("Server-side apply requires a field manager.")
    if force and strategy != PatchStrategy.APPLY:
        raise ValueError("Forcing is only possible for server-side apply.")

    params: Dict[str, str] = {}
    if field_manager:
        params['fieldManager'] = field_manager
    if force:
        params['force'] = 'true'

    patched_body: bodies.RawBody = await api.patch(
        url=resource.get_url(namespace=namespace, name=name, subresource=subresource),
        headers={'Content-Type': CONTENT_TYPES[strategy]},
        payload=patch,
        params=params,
        context=context,
        settings=settings,
        logger=logger,
    )
    return bodies.Body(patched_body)
