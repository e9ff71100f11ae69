import asyncio

import pytest

from infragraph.component import ComponentGroup
from infragraph.config import EngineConfig
from infragraph.deferred import DeferredValue
from infragraph.errors import InvalidStateError, ProvisionFailure
from infragraph.graph import ResourceGraph
from infragraph.provider import InMemoryProvider
from infragraph.resource import NodeStatus, ResourceType

Network = ResourceType("test:net/network:Network", {"arn"})
Subnet = ResourceType("test:net/subnet:Subnet", {"availability_zone"})
Gateway = ResourceType("test:net/gateway:Gateway")
ZONES = "test:index/getZones:getZones"


class ScriptedProvider(InMemoryProvider):
    """In-memory provider whose submissions can be delayed or made to fail by name."""

    def __init__(self, delays=None, failures=None, **kwargs):
        super().__init__(**kwargs)
        self.delays = delays or {}
        self.failures = failures or {}
        self.started: list[str] = []
        self.finished: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.resolved_at_submit: dict[str, set[str]] = {}

    async def submit(self, resource_type, properties):
        name = properties["name"]
        self.started.append(name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(name, 0))
            if name in self.failures:
                raise self.failures[name]
            response = await super().submit(resource_type, properties)
        finally:
            self.in_flight -= 1
        self.finished.append(name)
        return response


def declare_chain(graph):
    network = graph.declare("network", Network, {"name": "network"})
    subnet = graph.declare("subnet", Subnet, {"name": "subnet", "vpc_id": network.id})
    gateway = graph.declare("gateway", Gateway, {
        "name": "gateway",
        "subnet_id": subnet.id,
        "network_arn": network.output("arn"),
    })
    return network, subnet, gateway


@pytest.mark.asyncio
async def test_every_node_is_submitted_once_after_its_dependencies():
    graph = ResourceGraph("proj", "test")
    network, subnet, gateway = declare_chain(graph)
    provider = ScriptedProvider(delays={"network": 0.02})

    await graph.resolve_all(provider)

    assert provider.started == ["network", "subnet", "gateway"]
    assert provider.finished == ["network", "subnet", "gateway"]
    assert all(node.status is NodeStatus.RESOLVED for node in graph.nodes)
    submitted = dict((props["name"], props) for _, props in provider.submissions)
    assert submitted["subnet"]["vpc_id"] == network.id.value
    assert submitted["gateway"]["subnet_id"] == subnet.id.value
    assert submitted["gateway"]["network_arn"] == network.output("arn").value


@pytest.mark.asyncio
async def test_independent_branches_run_concurrently_within_limit():
    graph = ResourceGraph("proj", "test")
    for n in range(6):
        graph.declare(f"net-{n}", Network, {"name": f"net-{n}"})
    provider = ScriptedProvider(delays={f"net-{n}": 0.02 for n in range(6)})

    await graph.resolve_all(provider, EngineConfig(max_concurrency=3))

    assert provider.max_in_flight == 3
    assert sorted(provider.started) == [f"net-{n}" for n in range(6)]


@pytest.mark.asyncio
async def test_submission_order_is_deterministic():
    def run_once():
        graph = ResourceGraph("proj", "test")
        for n in range(3):
            network = graph.declare(f"net-{n}", Network, {"name": f"net-{n}"})
            graph.declare(f"subnet-{n}", Subnet, {"name": f"subnet-{n}", "vpc_id": network.id})
        provider = ScriptedProvider()
        return graph, provider

    orders = []
    for _ in range(2):
        graph, provider = run_once()
        await graph.resolve_all(provider, EngineConfig(max_concurrency=1))
        orders.append(provider.started)

    assert orders[0] == orders[1]
    for n in range(3):
        assert orders[0].index(f"net-{n}") < orders[0].index(f"subnet-{n}")


@pytest.mark.asyncio
async def test_pipeline_applies_in_order_to_every_node():
    graph = ResourceGraph("proj", "test")

    def f(properties):
        return {**properties, "trail": [*properties.get("trail", []), "f"]}

    def g(properties):
        return {**properties, "trail": [*properties.get("trail", []), "g"]}

    graph.pipeline.register(f)
    graph.pipeline.register(g)
    declare_chain(graph)
    for n in range(4):
        graph.declare(f"extra-{n}", Network, {"name": f"extra-{n}", "trail": ["declared"]})
    provider = ScriptedProvider(delays={"extra-0": 0.02, "network": 0.01})

    await graph.resolve_all(provider, EngineConfig(max_concurrency=4))

    assert len(provider.submissions) == 7
    for _, properties in provider.submissions:
        if properties["name"].startswith("extra"):
            assert properties["trail"] == ["declared", "f", "g"]
        else:
            assert properties["trail"] == ["f", "g"]


@pytest.mark.asyncio
async def test_zone_lookup_feeds_subnet_and_group_output():
    graph = ResourceGraph("proj", "test")

    def build(group):
        network = group.declare("net", Network, {"name": "net"})
        zones = group.graph.lookup(ZONES, {"state": "available"})
        subnet = group.declare("subnet", Subnet, {
            "name": "subnet",
            "vpc_id": network.id,
            "availability_zone": zones[0],
        })
        return {"subnetId": subnet.id}

    group = ComponentGroup.create(graph, "edge", "custom:test:Network", build, outputs=["subnetId"])
    graph.export("subnetId", group.output("subnetId"))

    zone_answer = DeferredValue()
    submitted_before_zones = []

    class SlowZones(ScriptedProvider):
        async def invoke(self, token, args):
            self.invocations.append((token, dict(args)))
            return await zone_answer

        async def submit(self, resource_type, properties):
            if not zone_answer.is_settled:
                submitted_before_zones.append(properties["name"])
            return await super().submit(resource_type, properties)

    provider = SlowZones()
    asyncio.get_running_loop().call_later(0.05, zone_answer.resolve, ["zone-a", "zone-b"])

    outputs = await graph.resolve_all(provider)

    assert submitted_before_zones == ["net"]
    subnet_properties = dict(provider.submissions)["test:net/subnet:Subnet"]
    assert subnet_properties["availability_zone"] == "zone-a"
    subnet = group.children[1]
    assert group.output("subnetId").value == subnet.id.value
    assert outputs == {"subnetId": subnet.id.value}
    assert provider.invocations == [(ZONES, {"state": "available"})]


@pytest.mark.asyncio
async def test_failure_lets_in_flight_submission_finish_and_skips_the_rest():
    graph = ResourceGraph("proj", "test")
    first = graph.declare("first", Network, {"name": "first"})
    second = graph.declare("second", Network, {"name": "second"})
    third = graph.declare("third", Network, {"name": "third"})
    cause = RuntimeError("quota exceeded")
    provider = ScriptedProvider(
        delays={"first": 0.01, "second": 0.05},
        failures={"first": cause},
    )

    with pytest.raises(ProvisionFailure) as raised:
        await graph.resolve_all(provider, EngineConfig(max_concurrency=2))

    assert raised.value.node == ("first", "test:net/network:Network")
    assert raised.value.cause is cause
    assert "quota exceeded" in str(raised.value)
    assert provider.started == ["first", "second"]
    assert provider.finished == ["second"]
    assert first.status is NodeStatus.FAILED
    assert second.status is NodeStatus.RESOLVED
    assert second.id.is_resolved
    assert third.status is NodeStatus.SKIPPED
    assert third.id.is_failed


@pytest.mark.asyncio
async def test_dependants_of_failed_node_are_skipped():
    graph = ResourceGraph("proj", "test")
    network, subnet, gateway = declare_chain(graph)
    provider = ScriptedProvider(failures={"network": RuntimeError("denied")})

    with pytest.raises(ProvisionFailure, match="denied"):
        await graph.resolve_all(provider)

    assert provider.started == ["network"]
    assert network.status is NodeStatus.FAILED
    assert subnet.status is NodeStatus.SKIPPED
    assert gateway.status is NodeStatus.SKIPPED
    with pytest.raises(ProvisionFailure):
        gateway.id.value


@pytest.mark.asyncio
async def test_failed_lookup_fails_the_node_using_it():
    graph = ResourceGraph("proj", "test")
    zones = graph.lookup("test:index/unknown:unknown")
    subnet = graph.declare("subnet", Subnet, {"name": "subnet", "availability_zone": zones[0]})
    provider = ScriptedProvider()

    with pytest.raises(ProvisionFailure) as raised:
        await graph.resolve_all(provider)

    assert isinstance(raised.value.cause, LookupError)
    assert subnet.status is NodeStatus.FAILED
    assert provider.submissions == []


@pytest.mark.asyncio
async def test_response_missing_declared_output_fails_node():
    class Forgetful(InMemoryProvider):
        async def submit(self, resource_type, properties):
            response = dict(await super().submit(resource_type, properties))
            del response["arn"]
            return response

    graph = ResourceGraph("proj", "test")
    network = graph.declare("network", Network, {"name": "network"})

    with pytest.raises(ProvisionFailure, match="missing declared outputs"):
        await graph.resolve_all(Forgetful())

    assert network.status is NodeStatus.FAILED
    assert network.id.is_failed


@pytest.mark.asyncio
async def test_failing_transformation_fails_node_without_submitting():
    graph = ResourceGraph("proj", "test")
    graph.pipeline.register(lambda properties: None)
    graph.declare("network", Network, {"name": "network"})
    provider = ScriptedProvider()

    with pytest.raises(ProvisionFailure, match="expected a mapping"):
        await graph.resolve_all(provider)

    assert provider.submissions == []


@pytest.mark.asyncio
async def test_value_timeout_bounds_waits_on_external_values():
    graph = ResourceGraph("proj", "test")
    never = DeferredValue()
    graph.declare("subnet", Subnet, {"name": "subnet", "availability_zone": never})

    with pytest.raises(ProvisionFailure) as raised:
        await graph.resolve_all(ScriptedProvider(), EngineConfig(value_timeout=0.01))

    assert isinstance(raised.value.cause, TimeoutError)


@pytest.mark.asyncio
async def test_exports_are_resolved_after_success():
    graph = ResourceGraph("proj", "test")
    network, subnet, _ = declare_chain(graph)
    graph.export("network", {"id": network.id, "subnets": [subnet.id]})
    graph.export("literal", 42)

    outputs = await graph.resolve_all(InMemoryProvider())

    assert outputs == {
        "network": {"id": network.id.value, "subnets": [subnet.id.value]},
        "literal": 42,
    }


@pytest.mark.asyncio
async def test_output_settled_outside_the_engine_is_fatal_and_resolves_nothing():
    graph = ResourceGraph("proj", "test")
    network = graph.declare("network", Network, {"name": "network"})
    network.id.resolve("pre-set")

    with pytest.raises(InvalidStateError, match="already settled"):
        await graph.resolve_all(InMemoryProvider())

    assert network.status is NodeStatus.SUBMITTED
    assert not network.output("arn").is_settled
    assert network.id.value == "pre-set"
