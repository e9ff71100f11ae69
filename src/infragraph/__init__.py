"""Infragraph: declarative infrastructure as a resolvable resource graph.

Programs declare resources whose properties may reference values that only
exist once other resources have been created. Infragraph records those
references as dependency edges, provisions resources concurrently in
dependency order through a provider, and reports the stack's outputs once
everything has resolved.

Key Features:
    - Single-assignment deferred values with ``map`` and ``combine``
    - Dependency edges derived from property values, with cycle detection
    - Deterministic, concurrency-bounded provisioning with fail-fast cancellation
    - Stack-wide transformation pipeline for cross-cutting policy
    - Component groups with validated, declared outputs

Basic Usage:
    >>> from infragraph import aws
    >>> from infragraph.graph import ResourceGraph
    >>> from infragraph.provider import InMemoryProvider
    >>>
    >>> graph = ResourceGraph("shop", "dev")
    >>> vpc = graph.declare("main", aws.Vpc, {"cidr_block": "10.0.0.0/16"})
    >>> graph.declare("igw", aws.InternetGateway, {"vpc_id": vpc.id})
    >>> graph.export("vpcId", vpc.id)
    >>> outputs = await graph.resolve_all(InMemoryProvider())

The framework consists of several core modules:
    - deferred: DeferredValue and its combinators
    - resource: resource types and declared nodes
    - graph: the registry and dependency ordering
    - resolution: the concurrent provisioning engine
    - pipeline / policies: property transformations
    - component: component groups
    - provider: the provider interface and an in-memory provider
    - config: YAML stack configuration
    - program: the ecommerce stack, runnable as the ``infragraph`` command
    - errors: framework-specific exceptions
"""
