# schedcore

Building blocks for a cluster resource scheduler:

- `schedcore.resources`: multi-dimensional `Resource` values with arithmetic
  (`add`, `sub`, `sub_eliminate_negative`, `multiply_by`, ...), fit checks
  (`fit_in`, `strictly_greater_than`, ...) and dominant-share fairness
  comparison (`comp`, `comp_fairness_ratio`, `fairness_ratio`).
- `schedcore.config`: the partition, queue, placement rule and user
  configuration model (`SchedulerConfig`, `PartitionConfig`, `QueueConfig`, ...),
  built from parsed YAML with `SchedulerConfig.from_dict`.
- `schedcore.config_validator`: `validate`, which checks a configuration and
  normalises it in place (default partition name, inserted root queue).
- `schedcore.config_loader`: loading YAML configurations from bytes or files,
  a replaceable loader, and `CONFIG_CONTEXT`, the active configuration per
  policy group.
- `schedcore.config_watcher`: `ConfigWatcher`, which polls a policy group's
  configuration for a limited time and calls a reloader when its checksum changes.
- `schedcore.acl`: `parse_acl` and `ACL.check_access`.
- `schedcore.usergroup`: `UserGroupCache`, a user-to-groups resolver with
  positive and negative caching; resolvers that echo the user, use the
  operating system's user database, or use a fixed set of test users.
- `schedcore.events`: event dataclasses passed between scheduler services and
  `Result`, a one-shot outcome a requester can wait on.
- `schedcore.plugins`: registration of resource-manager plugins
  (`PredicatesPlugin`, `VolumesPlugin`, `ReconcilePlugin`).
- `schedcore.metrics`: counters, gauges and histograms for queues and the
  scheduler, rendered in the Prometheus text exposition format.
- `schedcore.utils`: partition name helpers, `wait_for` and `parallelize_until`.
- `schedcore.log`: the package logger; `schedcore.pretty`: tab-indented JSON
  rendering of dataclasses.

## Installation

```
pip install .
```

## Resources

```python
from schedcore.resources import Resource, fit_in, comp, mock_resource

total = Resource.from_conf({"memory": "200", "vcore": "20"})
ask = Resource.from_conf({"memory": "10", "vcore": "1"})
assert fit_in(total, ask)

cluster = mock_resource(4, 4, 4)
assert comp(cluster, mock_resource(2, 2, 2), mock_resource(1, 1, 1)) == 1
```

## Loading a queue configuration

```python
from schedcore.config_loader import load_scheduler_config_from_bytes

config = load_scheduler_config_from_bytes(b"""
partitions:
  - name: default
    queues:
      - name: root
        queues:
          - name: a
            resources:
              guaranteed: {memory: 100, vcore: 10}
              max: {memory: 150, vcore: 20}
""")
print(config.partitions[0].queues[0].queues[0].name)  # a
```

An invalid configuration raises `schedcore.config.ConfigError`.
`load_scheduler_config(policy_group)` uses the current loader; by default it
reads `<policy_group>.yaml` from the directory set under
`CONFIG_MAP[SCHEDULER_CONFIG_PATH]`, otherwise from `/etc/schedcore` if the
file exists there, otherwise from the current directory.
`set_scheduler_config_loader` and `mock_scheduler_config_by_data` replace the
loader.

## ACLs and user groups

```python
from schedcore.acl import parse_acl
from schedcore.usergroup import UserGroup, new_test_cache

acl = parse_acl("user1,user2 group1,group2")
assert acl.check_access(UserGroup(user="user3", groups=["group1"]))

cache = new_test_cache()
print(cache.get_user_group("testuser1").groups)  # ['group1000', 'group1001']
```

A failed resolution raises `UserGroupError`, which carries the (cached)
`UserGroup` as `user_group`.

## Metrics

`get_scheduler_metrics()` creates the process-wide `SchedulerMetrics`,
registers them in `REGISTRY` and serves `REGISTRY.render()` at `/metrics` on
port 9090 in a background thread. `start_metrics_server(port, registry)`
serves any registry on another port.

## What this package does not do

It has no scheduling loop, no allocation of asks to nodes, no resource-manager
proxy, no RPC or REST server beyond the metrics endpoint, and no command-line
program. It provides the pieces such a scheduler is built from.

## Tests

```
pip install .[test]
pytest
```