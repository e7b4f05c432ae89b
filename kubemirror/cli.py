import asyncio
import functools
import itertools
import json
from typing import Any, Callable, Collection, Optional

import click

from kubemirror._cogs.clients import auth, fetching, scanning, watching
from kubemirror._cogs.configs import configuration
from kubemirror._cogs.structs import bodies, credentials, references
from kubemirror._core.actions import loggers
from kubemirror._core.intents import registries
from kubemirror._core.reactor import reflecting, running


def _parse_log_format(ctx: click.Context, param: click.Parameter, value: str) -> loggers.LogFormat:
    return loggers.LogFormat[value.upper()]


LOGGING_OPTIONS = [
    click.option('-v', '--verbose', is_flag=True, help="Log the debug messages too."),
    click.option('-d', '--debug', is_flag=True, help="Log the debug messages of asyncio too."),
    click.option('-q', '--quiet', is_flag=True, help="Log only the warnings and errors."),
    click.option('--log-format', default='full', callback=_parse_log_format,
                 type=click.Choice([log_format.name.lower() for log_format in loggers.LogFormat])),
    click.option('--log-refkey', type=str, help="The key of the collections in JSON logs."),
    click.option('--log-prefix/--no-log-prefix', default=None, help="Prefix the collections."),
]


def logging_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ Configure the logging before every command, all in the same way. """
    @functools.wraps(fn)
    def wrapper(*args: Any,
                verbose: bool, debug: bool, quiet: bool,
                log_format: loggers.LogFormat,
                log_prefix: Optional[bool],
                log_refkey: Optional[str],
                **kwargs: Any) -> Any:
        loggers.configure(debug=debug, verbose=verbose, quiet=quiet,
                          log_format=log_format, log_prefix=log_prefix, log_refkey=log_refkey)
        return fn(*args, **kwargs)

    for option in reversed(LOGGING_OPTIONS):
        wrapper = option(wrapper)
    return wrapper


def connection_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to build the connection info in all commands the same way."""
    @click.option('--server', type=str, envvar='KUBEMIRROR_SERVER', required=True)
    @click.option('--token', type=str, envvar='KUBEMIRROR_TOKEN')
    @click.option('--token-file', type=click.Path(dir_okay=False), envvar='KUBEMIRROR_TOKEN_FILE')
    @click.option('--username', type=str, envvar='KUBEMIRROR_USERNAME')
    @click.option('--password', type=str, envvar='KUBEMIRROR_PASSWORD')
    @click.option('--ca-file', type=click.Path(dir_okay=False), envvar='KUBEMIRROR_CA_FILE')
    @click.option('--insecure', is_flag=True, envvar='KUBEMIRROR_INSECURE')
    @click.option('--proxy', type=str, envvar='KUBEMIRROR_PROXY')
    @functools.wraps(fn)
    def wrapper(server: str,
                token: Optional[str],
                token_file: Optional[str],
                username: Optional[str],
                password: Optional[str],
                ca_file: Optional[str],
                insecure: bool,
                proxy: Optional[str],
                *args: Any, **kwargs: Any) -> Any:
        try:
            info = credentials.ConnectionInfo(
                server=server,
                token=token,
                token_path=token_file,
                username=username,
                password=password,
                ca_path=ca_file,
                insecure=insecure or None,
                proxy_url=proxy,
            )
        except credentials.LoginError as e:
            raise click.UsageError(str(e)) from e
        return fn(*args, info=info, **kwargs)

    return wrapper


def selector_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    """ A decorator to restrict the listed/watched collection in all commands the same way."""
    @click.option('-n', '--namespace', type=str, default=None)
    @click.option('-l', '--selector', 'labels', type=str, default=None)
    @click.option('--field-selector', 'fields', type=str, default=None)
    @functools.wraps(fn)
    def wrapper(namespace: Optional[str],
                labels: Optional[str],
                fields: Optional[str],
                *args: Any, **kwargs: Any) -> Any:
        selector = references.Selector(
            namespace=references.NamespaceName(namespace) if namespace else None,
            labels=labels,
            fields=fields,
        )
        return fn(*args, selector=selector, **kwargs)

    return wrapper


@click.version_option(prog_name='kubemirror')
@click.group(name='kubemirror', context_settings=dict(
    auto_envvar_prefix='KUBEMIRROR',
))
def main() -> None:
    pass


@main.command()
@logging_options
@connection_options
@click.option('-g', '--group', 'groups', multiple=True)
def resources(
        info: credentials.ConnectionInfo,
        groups: Collection[str],
) -> None:
    """ Discover and print the resources served by the cluster. """
    asyncio.run(_resources(info=info, groups=groups or None))


@main.command(name='list')
@logging_options
@connection_options
@selector_options
@click.option('--page-size', type=int, default=None)
@click.argument('resource')
def list_(
        info: credentials.ConnectionInfo,
        selector: references.Selector,
        page_size: Optional[int],
        resource: str,
) -> None:
    """ List the objects of a resource once, as JSON lines. """
    settings = configuration.ClientSettings()
    settings.listing.page_size = page_size
    asyncio.run(_list(info=info, settings=settings, query=resource, selector=selector))


@main.command()
@logging_options
@connection_options
@selector_options
@click.option('--since', 'resource_version', type=str, default=None)
@click.option('--server-timeout', type=float, default=None)
@click.argument('resource')
def watch(
        info: credentials.ConnectionInfo,
        selector: references.Selector,
        resource_version: Optional[str],
        server_timeout: Optional[float],
        resource: str,
) -> None:
    """ Watch the raw events of a resource until the server closes the stream. """
    settings = configuration.ClientSettings()
    settings.watching.server_timeout = server_timeout
    asyncio.run(_watch(info=info, settings=settings, query=resource, selector=selector,
                       resource_version=resource_version))


@main.command()
@logging_options
@connection_options
@selector_options
@click.option('--resync-interval', type=float, default=None)
@click.option('--inactivity-timeout', type=float, default=None)
@click.argument('resource')
def mirror(
        info: credentials.ConnectionInfo,
        selector: references.Selector,
        resync_interval: Optional[float],
        inactivity_timeout: Optional[float],
        resource: str,
) -> None:
    """ Mirror a resource's objects locally and log the changes until interrupted. """
    settings = configuration.ClientSettings()
    settings.reflecting.resync_interval = resync_interval
    settings.watching.inactivity_timeout = inactivity_timeout
    try:
        asyncio.run(_mirror(info=info, settings=settings, query=resource, selector=selector))
    except KeyboardInterrupt:
        pass


async def _resources(
        *,
        info: credentials.ConnectionInfo,
        groups: Optional[Collection[str]],
) -> None:
    settings = configuration.ClientSettings()
    async with auth.APIContext(info) as context:
        found = await scanning.scan_resources(
            context=context, settings=settings, groups=groups, logger=loggers.logger)
    for resource in sorted(found, key=lambda r: (r.group, r.version, r.plural)):
        scope = 'namespaced' if resource.namespaced else 'cluster'
        click.echo(f"{resource!r}\t{resource.kind}\t{scope}\t{','.join(sorted(resource.shortcuts))}")


async def _list(
        *,
        info: credentials.ConnectionInfo,
        settings: configuration.ClientSettings,
        query: str,
        selector: references.Selector,
) -> None:
    async with auth.APIContext(info) as context:
        registry = registries.ResourceRegistry(context=context, settings=settings)
        resource = await registry.lookup(query)
        entities = await fetching.list_all_objs(
            context=context,
            settings=settings,
            resource=resource,
            namespace=selector.namespace,
            labels=selector.label_selector,
            fields=selector.field_selector,
            logger=loggers.logger,
        )
    for body in entities.items:
        click.echo(json.dumps(dict(body)))


async def _watch(
        *,
        info: credentials.ConnectionInfo,
        settings: configuration.ClientSettings,
        query: str,
        selector: references.Selector,
        resource_version: Optional[str],
) -> None:
    def echo(event: bodies.WatchEvent) -> None:
        click.echo(json.dumps({'type': event.type, 'object': dict(event.object)}))

    async with auth.APIContext(info) as context:
        registry = registries.ResourceRegistry(context=context, settings=settings)
        resource = await registry.lookup(query)
        await watching.watch_objs(
            context=context,
            settings=settings,
            resource=resource,
            namespace=selector.namespace,
            labels=selector.label_selector,
            fields=selector.field_selector,
            since=resource_version,
            callback=echo,
        )


async def _mirror(
        *,
        info: credentials.ConnectionInfo,
        settings: configuration.ClientSettings,
        query: str,
        selector: references.Selector,
) -> None:
    async with auth.APIContext(info) as context:
        registry = registries.ResourceRegistry(context=context, settings=settings)
        resource = await registry.lookup(query)
        reflector = running.start_reflector(resource, context=context, selector=selector, settings=settings)

        def log_event(event: bodies.WatchEvent) -> None:
            if event.type != 'BOOKMARK':
                reflector.logger.info(f"{event.type} {event.object.meta.namespace or ''}/"
                                      f"{event.object.meta.name} ({len(reflector.store)} objects)")

        def log_error(error: Exception) -> None:
            reflector.logger.info(f"Relisting after: {error}")

        running.on_event(reflector, log_event)
        running.on_error(reflector, log_error)
        try:
            await _wait_forever(reflector)
        finally:
            await running.stop_reflector(reflector)


async def _wait_forever(reflector: reflecting.Reflector) -> None:
    finished = asyncio.create_task(reflector.wait())
    try:
        for synced in itertools.cycle([True, False]):
            toggled = asyncio.create_task(reflector.synced.wait_for(synced))
            try:
                await asyncio.wait([toggled, finished], return_when=asyncio.FIRST_COMPLETED)
            finally:
                toggled.cancel()
            if finished.done():
                raise click.ClickException("The reflector has exited unexpectedly.")
            if synced:
                reflector.logger.info(f"In sync: {len(running.current_snapshot(reflector))} objects "
                                      f"at resource version {reflector.last_resource_version!r}.")
    finally:
        finished.cancel()
