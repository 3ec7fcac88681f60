"""
Registry Key Namespace.

Every Redis key hydra-cli reads or writes is built here, so the layout
used by Hydra services is described in one place:

    <prefix>:nodes                              hash   instanceID -> node JSON
    <prefix>:<service>:service                  string service registration JSON
    <prefix>:<service>:service:routes           set    route patterns
    <prefix>:<service>:<instance>:health        string health snapshot JSON
    <prefix>:<service>:<instance>:health:log    list   health log entries
    <prefix>:<service>:configs                  hash   version -> config JSON
    <prefix>:mc:<service>[:<instance>]          pub/sub message channel
    <prefix>:<service>:mqrecieved               list   queued messages
"""

from dataclasses import dataclass

from hydra_cli.core.config import get_app_config

ROUTES_SUFFIX = ":service:routes"
SERVICE_SUFFIX = ":service"
HEALTH_LOG_SUFFIX = ":health:log"
CONFIGS_SUFFIX = ":configs"


@dataclass(frozen=True)
class RegistryKeys:
    """Key builder bound to one namespace prefix."""

    prefix: str = "hydra:service"

    @classmethod
    def from_config(cls) -> "RegistryKeys":
        """Build keys using the prefix from application.yaml."""
        return cls(prefix=get_app_config().application.registry.key_prefix)

    @property
    def nodes(self) -> str:
        return f"{self.prefix}:nodes"

    def service(self, service_name: str) -> str:
        return f"{self.prefix}:{service_name}{SERVICE_SUFFIX}"

    @property
    def service_pattern(self) -> str:
        return f"{self.prefix}:*{SERVICE_SUFFIX}"

    def routes(self, service_name: str) -> str:
        return f"{self.prefix}:{service_name}{ROUTES_SUFFIX}"

    @property
    def routes_pattern(self) -> str:
        return f"{self.prefix}:*{ROUTES_SUFFIX}"

    def health_pattern(self, service_name: str) -> str:
        return f"{self.prefix}:{service_name}:*:health"

    def health_log_pattern(self, service_name: str) -> str:
        return f"*:{service_name}:*{HEALTH_LOG_SUFFIX}"

    def configs(self, service_name: str) -> str:
        return f"{self.prefix}:{service_name}{CONFIGS_SUFFIX}"

    @property
    def configs_pattern(self) -> str:
        return f"{self.prefix}:*{CONFIGS_SUFFIX}"

    def message_channel(self, service_name: str, instance_id: str | None = None) -> str:
        channel = f"{self.prefix}:mc:{service_name}"
        return f"{channel}:{instance_id}" if instance_id else channel

    def message_queue(self, service_name: str) -> str:
        return f"{self.prefix}:{service_name}:mqrecieved"

    def service_name_from(self, key: str, suffix: str) -> str | None:
        """
        Extract the service name embedded in `<prefix>:<service><suffix>`.

        Returns None when the key is outside this namespace or the service
        segment is empty.
        """
        head = f"{self.prefix}:"
        if not key.startswith(head) or not key.endswith(suffix):
            return None
        name = key[len(head):len(key) - len(suffix)]
        return name or None
