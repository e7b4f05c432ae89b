import json

import pytest

import kubemirror
from kubemirror._cogs.clients import fetching, scanning, watching
from kubemirror._cogs.structs.bodies import Body, EntityList, WatchEvent
from kubemirror._cogs.structs.references import Resource
from kubemirror._core.intents import registries
from kubemirror._core.reactor import reflecting

PODS = Resource('', 'v1', 'pods', kind='Pod', singular='pod',
                shortcuts=frozenset({'po'}), namespaced=True)
DEPLOYMENTS = Resource('apps', 'v1', 'deployments', kind='Deployment',
                       shortcuts=frozenset({'deploy'}), namespaced=True)
NAMESPACES = Resource('', 'v1', 'namespaces', kind='Namespace',
                      shortcuts=frozenset({'ns'}), namespaced=False)


@pytest.fixture()
def server_env():
    return {'KUBEMIRROR_SERVER': 'https://fake-host'}


@pytest.fixture()
def lookup_mock(mocker):
    return mocker.patch.object(registries.ResourceRegistry, 'lookup', return_value=PODS)


def test_help(invoke):
    result = invoke(['--help'])
    assert result.exit_code == 0
    for command in ['resources', 'list', 'watch', 'mirror']:
        assert command in result.output


def test_version(invoke):
    result = invoke(['--version'])
    assert result.exit_code == 0
    assert 'kubemirror' in result.output
    if kubemirror.__version__:
        assert kubemirror.__version__ in result.output


def test_server_is_required(invoke):
    result = invoke(['list', 'pods'], env={'KUBEMIRROR_SERVER': ''})
    assert result.exit_code == 2
    assert "--server" in result.output


def test_inconsistent_credentials_are_usage_errors(invoke, server_env):
    result = invoke(['list', 'pods', '--token', 'tkn', '--username', 'me', '--password', 'pw'],
                    env=server_env)
    assert result.exit_code == 2
    assert "Specify only one of" in result.output


def test_incomplete_basic_auth_is_a_usage_error(invoke, server_env):
    result = invoke(['list', 'pods', '--username', 'me'], env=server_env)
    assert result.exit_code == 2
    assert "both the username & the password" in result.output


def test_resources_command(mocker, invoke, server_env):
    scan_mock = mocker.patch.object(scanning, 'scan_resources',
                                    return_value={DEPLOYMENTS, NAMESPACES, PODS})
    result = invoke(['resources', '-g', '', '-g', 'apps', '-q'], env=server_env)

    assert result.exit_code == 0
    assert result.output.splitlines() == [
        "namespaces.v1\tNamespace\tcluster\tns",
        "pods.v1\tPod\tnamespaced\tpo",
        "deployments.v1.apps\tDeployment\tnamespaced\tdeploy",
    ]
    assert set(scan_mock.call_args.kwargs['groups']) == {'', 'apps'}


def test_list_command(mocker, invoke, server_env, lookup_mock):
    entities = EntityList(kind='PodList', resource_version='100', items=[
        Body({'metadata': {'name': 'pod1', 'namespace': 'ns1'}}),
        Body({'metadata': {'name': 'pod2', 'namespace': 'ns1'}}),
    ])
    list_mock = mocker.patch.object(fetching, 'list_all_objs', return_value=entities)

    result = invoke(['list', 'po', '-n', 'ns1', '-l', 'app=x', '--field-selector', 'a=b',
                     '--page-size', '10', '-q'], env=server_env)

    assert result.exit_code == 0
    lines = [json.loads(line) for line in result.output.splitlines()]
    assert [line['metadata']['name'] for line in lines] == ['pod1', 'pod2']
    assert lookup_mock.call_args.args[-1] == 'po'
    assert list_mock.call_args.kwargs['resource'] is PODS
    assert list_mock.call_args.kwargs['namespace'] == 'ns1'
    assert list_mock.call_args.kwargs['labels'] == 'app=x'
    assert list_mock.call_args.kwargs['fields'] == 'a=b'
    assert list_mock.call_args.kwargs['settings'].listing.page_size == 10


def test_watch_command(mocker, invoke, server_env, lookup_mock):

    async def watch_fn(*, callback, **kwargs):
        callback(WatchEvent('ADDED', Body({'metadata': {'name': 'pod1'}}), None))
        callback(WatchEvent('DELETED', Body({'metadata': {'name': 'pod1'}}), None))

    watch_mock = mocker.patch.object(watching, 'watch_objs', side_effect=watch_fn)
    result = invoke(['watch', 'pods', '--since', '123', '--server-timeout', '60', '-q'], env=server_env)

    assert result.exit_code == 0
    lines = [json.loads(line) for line in result.output.splitlines()]
    assert [line['type'] for line in lines] == ['ADDED', 'DELETED']
    assert lines[0]['object'] == {'metadata': {'name': 'pod1'}}
    assert watch_mock.call_args.kwargs['since'] == '123'
    assert watch_mock.call_args.kwargs['namespace'] is None
    assert watch_mock.call_args.kwargs['settings'].watching.server_timeout == 60


def test_mirror_command_exits_when_the_reflector_dies(mocker, invoke, server_env, lookup_mock):
    mocker.patch.object(reflecting.Reflector, '_run', side_effect=RuntimeError("boo!"))
    result = invoke(['mirror', 'pods', '-q'], env=server_env)
    assert result.exit_code == 1
    assert "The reflector has exited unexpectedly." in result.output


def test_lookup_failures_fail_the_command(mocker, invoke, server_env):
    mocker.patch.object(registries.ResourceRegistry, 'lookup',
                        side_effect=registries.ResourceNotFoundError("No resources match."))
    result = invoke(['list', 'unicorns'], env=server_env)
    assert result.exit_code == 1
    assert isinstance(result.exception, registries.ResourceNotFoundError)


@pytest.mark.parametrize('log_format', ['plain', 'full', 'json'])
def test_log_formats_are_accepted(mocker, invoke, server_env, lookup_mock, log_format):
    mocker.patch.object(fetching, 'list_all_objs',
                        return_value=EntityList(kind=None, resource_version='1', items=[]))
    result = invoke(['list', 'pods', '--log-format', log_format, '-v'], env=server_env)
    assert result.exit_code == 0


def test_unknown_log_formats_are_rejected(invoke, server_env):
    result = invoke(['list', 'pods', '--log-format', 'xml'], env=server_env)
    assert result.exit_code == 2
