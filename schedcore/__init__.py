"""Building blocks for a cluster resource scheduler: resources, configuration, ACLs, user groups, events, plugins and metrics."""

__version__ = "0.1.0"