import asyncio
import functools

import pytest

from kubemirror._cogs.clients import fetching, watching
from kubemirror._cogs.clients.errors import APIForbiddenError
from kubemirror._cogs.structs.bodies import EntityList
from kubemirror._cogs.structs.references import Resource
from kubemirror._core.intents.registries import AmbiguousResourceError, ResourceNotFoundError, \
                                                ResourceQuery, ResourceRegistry, Verbs

PODS = Resource('', 'v1', 'pods', kind='Pod', singular='pod',
                shortcuts=frozenset({'po'}), namespaced=True)
DEPLOYMENTS_V1 = Resource('apps', 'v1', 'deployments', kind='Deployment', singular='deployment',
                          shortcuts=frozenset({'deploy'}), namespaced=True)
DEPLOYMENTS_V1B1 = Resource('apps', 'v1beta1', 'deployments', kind='Deployment',
                            singular='deployment', namespaced=True, preferred=False)
THINGS_G1 = Resource('g1', 'v1', 'things', kind='Thing', singular='thing', namespaced=False)
THINGS_G2 = Resource('g2', 'v1', 'things', kind='Thing', singular='thing', namespaced=False)
PODMETRICS = Resource('metrics.k8s.io', 'v1beta1', 'pods', kind='PodMetrics', namespaced=True)
ALL = {PODS, DEPLOYMENTS_V1, DEPLOYMENTS_V1B1, THINGS_G1, THINGS_G2, PODMETRICS}


@pytest.fixture()
def scan_mock(mocker):
    async def scan_fn(**kwargs):
        await asyncio.sleep(0.01)
        return ALL
    return mocker.patch('kubemirror._cogs.clients.scanning.scan_resources', side_effect=scan_fn)


@pytest.fixture()
def registry(context, settings):
    return ResourceRegistry(context=context, settings=settings)


async def test_discovery_happens_on_first_use(registry, scan_mock):
    assert not registry.discovered
    assert registry.resources == frozenset()

    await registry.ensure_discovered()

    assert registry.discovered
    assert registry.resources == ALL
    assert scan_mock.call_count == 1


async def test_discovery_happens_once_when_concurrent(registry, scan_mock):
    await asyncio.gather(*[registry.lookup('pods') for _ in range(10)])
    await registry.lookup('deploy')
    assert scan_mock.call_count == 1


async def test_groups_are_passed_to_discovery(context, settings, scan_mock):
    registry = ResourceRegistry(context=context, settings=settings, groups=['', 'apps'])
    await registry.ensure_discovered()
    assert scan_mock.call_args.kwargs['groups'] == ['', 'apps']
    assert scan_mock.call_args.kwargs['context'] is context


@pytest.mark.parametrize('query, expected', [
    ('pods', PODS),
    ('pod', PODS),
    ('Pod', PODS),
    ('po', PODS),
    ('pods.v1', PODS),
    ('deployments', DEPLOYMENTS_V1),
    ('deploy', DEPLOYMENTS_V1),
    ('deployments.apps', DEPLOYMENTS_V1),
    ('deployments.v1.apps', DEPLOYMENTS_V1),
    ('deployments.v1beta1.apps', DEPLOYMENTS_V1B1),
    ('things.g1', THINGS_G1),
    ('PodMetrics', PODMETRICS),
    (ResourceQuery('apps/v1', 'deployments'), DEPLOYMENTS_V1),
])
async def test_lookup(registry, scan_mock, query, expected):
    resource = await registry.lookup(query)
    assert resource == expected
    assert resource.version == expected.version


async def test_lookup_of_the_absent(registry, scan_mock):
    with pytest.raises(ResourceNotFoundError, match=r"No resources match"):
        await registry.lookup('unicorns')


async def test_lookup_of_the_ambiguous(registry, scan_mock):
    with pytest.raises(AmbiguousResourceError, match=r"things.v1.g1, things.v1.g2"):
        await registry.lookup('things')


def test_not_found_and_ambiguous_are_lookup_errors():
    assert issubclass(ResourceNotFoundError, LookupError)
    assert issubclass(AmbiguousResourceError, LookupError)


async def test_verbs_are_bound(registry, scan_mock, context, settings):
    verbs = await registry.verbs('pods')
    assert isinstance(verbs, Verbs)
    assert verbs.resource == PODS

    for verb in [verbs.get, verbs.list, verbs.watch, verbs.create,
                 verbs.update, verbs.patch, verbs.delete]:
        assert isinstance(verb, functools.partial)
        assert verb.keywords['context'] is context
        assert verb.keywords['settings'] is settings
        assert verb.keywords['resource'] is PODS

    assert verbs.get.func is fetching.read_obj
    assert verbs.list.func is fetching.list_objs
    assert verbs.watch.func is watching.watch_objs


async def test_verbs_of_known_resources_skip_the_discovery(registry, scan_mock):
    verbs = await registry.verbs(THINGS_G2)
    assert verbs.resource is THINGS_G2
    assert not scan_mock.called


async def test_verbs_make_the_calls(mocker, registry, scan_mock, context, settings):
    read_mock = mocker.patch.object(fetching, 'read_obj', return_value={'a': 'b'})
    verbs = await registry.verbs('po')
    result = await verbs.get(namespace='ns1', name='pod1')
    assert result == {'a': 'b'}
    assert read_mock.call_args.kwargs['namespace'] == 'ns1'
    assert read_mock.call_args.kwargs['name'] == 'pod1'
    assert read_mock.call_args.kwargs['resource'] == PODS


async def test_proxy_urls_of_namespaced_objects(registry, scan_mock, hostname):
    url = await registry.proxy_url('po', name='pod1', port=8080, namespace='ns1')
    assert url == f'https://{hostname}/api/v1/namespaces/ns1/pods/pod1:8080/proxy'


async def test_proxy_urls_of_cluster_objects(registry, scan_mock, hostname):
    nodes = Resource('', 'v1', 'nodes', kind='Node', namespaced=False)
    url = await registry.proxy_url(nodes, name='node1', port='http')
    assert url == f'https://{hostname}/api/v1/nodes/node1:http/proxy'
    assert not scan_mock.called


@pytest.fixture()
def listable_scan_mock(mocker):
    resources = {
        Resource('', 'v1', 'pods', kind='Pod', namespaced=True, verbs=frozenset({'list'})),
        Resource('', 'v1', 'secrets', kind='Secret', namespaced=True, verbs=frozenset({'list'})),
        Resource('', 'v1', 'nodes', kind='Node', namespaced=False, verbs=frozenset({'list'})),
        Resource('', 'v1', 'bindings', kind='Binding', namespaced=True, verbs=frozenset({'create'})),
    }
    return mocker.patch('kubemirror._cogs.clients.scanning.scan_resources', return_value=resources)


@pytest.fixture()
def listing_mock(mocker):
    async def list_fn(*, resource, **kwargs):
        if resource.plural == 'secrets':
            raise APIForbiddenError({'message': 'forbidden'}, status=403)
        return EntityList(kind=None, resource_version='1', items=[])
    return mocker.patch.object(fetching, 'list_all_objs', side_effect=list_fn)


async def test_listing_everything_skips_the_failed_resources(
        registry, listable_scan_mock, listing_mock, assert_logs):

    results = await registry.list_everything(labels='app=x')

    assert {resource.plural for resource in results} == {'pods', 'nodes'}
    assert {call.kwargs['resource'].plural for call in listing_mock.call_args_list} == \
           {'pods', 'secrets', 'nodes'}
    assert all(call.kwargs['labels'] == 'app=x' for call in listing_mock.call_args_list)
    assert_logs([r"Skipping secrets.v1 from listing everything: APIForbiddenError"])


async def test_listing_everything_in_a_namespace(registry, listable_scan_mock, listing_mock):
    results = await registry.list_everything(namespace='ns1')

    assert {resource.plural for resource in results} == {'pods'}
    assert all(call.kwargs['namespace'] == 'ns1' for call in listing_mock.call_args_list)
