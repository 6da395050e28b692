"""Load balancer rule and health probe management.

This module idempotently creates, updates, removes and lists load balancing
rules and health probes on an Azure load balancer through
azure-mgmt-network.

Idempotent add:
- Rule absent: create it.
- Rule present, requested fields identical: no-op, no mutating call.
- Rule present, fields differ: fail listing every differing field, unless
  ``force`` is set, in which case the update path runs.

Update preserves every field the caller did not specify.

Outbound SNAT:
- A frontend IP configuration used by an outbound rule cannot also provide
  SNAT for an inbound rule. The manager sets ``disable_outbound_snat``
  automatically (``auto_fix_snat``) or fails asking for the flag.

Every mutating operation supports ``dry_run``, which computes the same
decision without calling ``begin_create_or_update``.
"""

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.mgmt.network import NetworkManagementClient
from azure.mgmt.network.models import LoadBalancer, LoadBalancingRule, Probe, SubResource

from opskit.credential_factory import CredentialFactory
from opskit.modules.interaction_handler import (
    AutoInteractionHandler,
    InteractionHandler,
    SelectionError,
)

logger = logging.getLogger(__name__)


class LoadBalancerError(Exception):
    """Raised when load balancer operations fail."""

    pass


RULE_PROTOCOLS = ("Tcp", "Udp", "All")
PROBE_PROTOCOLS = ("Tcp", "Http", "Https")
LOAD_DISTRIBUTIONS = ("Default", "SourceIP", "SourceIPProtocol")

MIN_IDLE_TIMEOUT = 4
MAX_IDLE_TIMEOUT = 30
MIN_PROBE_INTERVAL = 5


def _resource_name(resource_id: str | None) -> str | None:
    """Return the last segment of an ARM resource id."""
    if not resource_id:
        return None
    return resource_id.rstrip("/").split("/")[-1]


def sdk_value(value: Any) -> Any:
    """Unwrap an SDK str-enum such as ``TransportProtocol.TCP`` to its plain value."""
    return getattr(value, "value", value)


def _normalize_choice(value: str | None, choices: tuple[str, ...], what: str) -> str | None:
    """Map a case-insensitive choice to its canonical spelling."""
    if value is None:
        return None
    for choice in choices:
        if choice.lower() == value.lower():
            return choice
    raise LoadBalancerError(f"Invalid {what}: {value}. Expected one of: {', '.join(choices)}")


def _validate_port(value: int | None, what: str, allow_zero: bool = False) -> None:
    if value is None:
        return
    low = 0 if allow_zero else 1
    if not low <= value <= 65535:
        raise LoadBalancerError(f"{what} must be between {low} and 65535, got {value}")


@dataclass
class LBRuleSpec:
    """Requested load balancing rule attributes.

    ``None`` means "not specified": add uses defaults, update preserves the
    existing value.
    """

    frontend_port: int | None = None
    backend_port: int | None = None
    protocol: str | None = None
    idle_timeout_in_minutes: int | None = None
    enable_floating_ip: bool | None = None
    disable_outbound_snat: bool | None = None
    enable_tcp_reset: bool | None = None
    load_distribution: str | None = None
    frontend_ip_name: str | None = None
    backend_pool_name: str | None = None
    probe_name: str | None = None

    def __post_init__(self):
        self.protocol = _normalize_choice(self.protocol, RULE_PROTOCOLS, "protocol")
        self.load_distribution = _normalize_choice(
            self.load_distribution, LOAD_DISTRIBUTIONS, "load distribution"
        )
        # Port 0 is valid only for HA ports (protocol All)
        _validate_port(self.frontend_port, "Frontend port", allow_zero=True)
        _validate_port(self.backend_port, "Backend port", allow_zero=True)
        if self.idle_timeout_in_minutes is not None and not (
            MIN_IDLE_TIMEOUT <= self.idle_timeout_in_minutes <= MAX_IDLE_TIMEOUT
        ):
            raise LoadBalancerError(
                f"Idle timeout must be between {MIN_IDLE_TIMEOUT} and {MAX_IDLE_TIMEOUT} "
                f"minutes, got {self.idle_timeout_in_minutes}"
            )

    def specified(self) -> dict[str, Any]:
        """Return only the fields the caller set."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class LBProbeSpec:
    """Requested health probe attributes (``None`` means "not specified")."""

    protocol: str | None = None
    port: int | None = None
    interval_in_seconds: int | None = None
    number_of_probes: int | None = None
    request_path: str | None = None

    def __post_init__(self):
        self.protocol = _normalize_choice(self.protocol, PROBE_PROTOCOLS, "probe protocol")
        _validate_port(self.port, "Probe port")
        if self.interval_in_seconds is not None and self.interval_in_seconds < MIN_PROBE_INTERVAL:
            raise LoadBalancerError(
                f"Probe interval must be at least {MIN_PROBE_INTERVAL} seconds, "
                f"got {self.interval_in_seconds}"
            )
        if self.number_of_probes is not None and self.number_of_probes < 1:
            raise LoadBalancerError(
                f"Probe threshold must be at least 1, got {self.number_of_probes}"
            )
        if self.request_path is not None and not self.request_path.startswith("/"):
            raise LoadBalancerError(f"Probe request path must start with '/': {self.request_path}")

    def specified(self) -> dict[str, Any]:
        """Return only the fields the caller set."""
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class LBOperationResult:
    """Outcome of a rule or probe operation.

    status is one of: created, updated, removed, no-op, planned.
    changes maps field name to (current, requested).
    """

    action: str
    name: str
    status: str
    changes: dict[str, tuple[Any, Any]] = field(default_factory=dict)
    dry_run: bool = False

    @property
    def changed(self) -> bool:
        return self.status in ("created", "updated", "removed")

    def format_summary(self) -> str:
        prefix = "[dry-run] " if self.dry_run else ""
        lines = [f"{prefix}{self.action} '{self.name}': {self.status}"]
        for key, (current, requested) in self.changes.items():
            lines.append(f"  {key}: {current!r} -> {requested!r}")
        return "\n".join(lines)


# Reference fields hold SubResource ids; compare by resource name
_RULE_REFERENCE_FIELDS = {
    "frontend_ip_name": "frontend_ip_configuration",
    "backend_pool_name": "backend_address_pool",
    "probe_name": "probe",
}


def rule_value(rule: LoadBalancingRule, field_name: str) -> Any:
    """Read a spec field from an existing SDK rule."""
    if field_name in _RULE_REFERENCE_FIELDS:
        ref = getattr(rule, _RULE_REFERENCE_FIELDS[field_name], None)
        if ref is None and field_name == "backend_pool_name":
            pools = getattr(rule, "backend_address_pools", None) or []
            ref = pools[0] if pools else None
        return _resource_name(ref.id) if ref is not None else None
    return sdk_value(getattr(rule, field_name, None))


def _values_equal(current: Any, requested: Any) -> bool:
    if isinstance(current, str) and isinstance(requested, str):
        return current.lower() == requested.lower()
    # Azure omits false booleans on some API versions
    if isinstance(requested, bool) and current is None:
        return requested is False
    return current == requested


def diff_rule(existing: LoadBalancingRule, spec: LBRuleSpec) -> dict[str, tuple[Any, Any]]:
    """Compare the fields set in ``spec`` with an existing rule.

    Returns:
        Mapping of field name to (current, requested) for every differing field
    """
    changes: dict[str, tuple[Any, Any]] = {}
    for key, requested in spec.specified().items():
        current = rule_value(existing, key)
        if not _values_equal(current, requested):
            changes[key] = (current, requested)
    return changes


def diff_probe(existing: Probe, spec: LBProbeSpec) -> dict[str, tuple[Any, Any]]:
    """Compare the fields set in ``spec`` with an existing probe."""
    changes: dict[str, tuple[Any, Any]] = {}
    for key, requested in spec.specified().items():
        current = sdk_value(getattr(existing, key, None))
        if not _values_equal(current, requested):
            changes[key] = (current, requested)
    return changes


def format_diagnostics(lb: LoadBalancer) -> str:
    """Render frontends, pools, probes, rules and outbound rules for troubleshooting."""
    lines = [f"Load balancer '{lb.name}' ({lb.location})"]

    lines.append("  Frontend IP configurations:")
    for fe in lb.frontend_ip_configurations or []:
        address = fe.private_ip_address or _resource_name(
            fe.public_ip_address.id if fe.public_ip_address else None
        )
        lines.append(f"    - {fe.name} ({address or 'n/a'})")

    lines.append("  Backend pools:")
    for pool in lb.backend_address_pools or []:
        lines.append(f"    - {pool.name}")

    lines.append("  Probes:")
    for probe in lb.probes or []:
        path = f" {probe.request_path}" if probe.request_path else ""
        lines.append(
            f"    - {probe.name}: {sdk_value(probe.protocol)}:{probe.port}{path} "
            f"every {probe.interval_in_seconds}s x{probe.number_of_probes}"
        )

    lines.append("  Load balancing rules:")
    for rule in lb.load_balancing_rules or []:
        lines.append(
            f"    - {rule.name}: {sdk_value(rule.protocol)} "
            f"{rule.frontend_port}->{rule.backend_port} "
            f"fe={rule_value(rule, 'frontend_ip_name')} "
            f"pool={rule_value(rule, 'backend_pool_name')} "
            f"probe={rule_value(rule, 'probe_name')} "
            f"idle={rule.idle_timeout_in_minutes} "
            f"floatingIP={rule.enable_floating_ip} "
            f"disableOutboundSnat={rule.disable_outbound_snat}"
        )

    lines.append("  Outbound rules:")
    for outbound in lb.outbound_rules or []:
        frontends = ", ".join(
            _resource_name(ref.id) or "?" for ref in outbound.frontend_ip_configurations or []
        )
        lines.append(f"    - {outbound.name}: frontends=[{frontends}]")

    return "\n".join(lines)


class LoadBalancerManager:
    """Manage rules and probes of one load balancer.

    Each public operation fetches the current load balancer state, decides,
    and writes the whole load balancer back only when something changed.
    """

    def __init__(
        self,
        client: NetworkManagementClient,
        resource_group: str,
        lb_name: str,
        interaction: InteractionHandler | None = None,
        auto_fix_snat: bool = True,
    ):
        self.client = client
        self.resource_group = resource_group
        self.lb_name = lb_name
        self.interaction = interaction or AutoInteractionHandler()
        self.auto_fix_snat = auto_fix_snat

    @classmethod
    def for_subscription(
        cls, subscription_id: str, resource_group: str, lb_name: str, **kwargs: Any
    ) -> "LoadBalancerManager":
        """Create a manager with a NetworkManagementClient for the subscription."""
        credential = CredentialFactory.create_management_credential()
        client = NetworkManagementClient(credential, subscription_id)
        return cls(client, resource_group, lb_name, **kwargs)

    # ------------------------------------------------------------------
    # Load balancer I/O
    # ------------------------------------------------------------------

    def get_load_balancer(self) -> LoadBalancer:
        """Fetch the current load balancer.

        Raises:
            LoadBalancerError: If not found or the API call fails
        """
        try:
            return self.client.load_balancers.get(self.resource_group, self.lb_name)
        except ResourceNotFoundError as e:
            raise LoadBalancerError(
                f"Load balancer '{self.lb_name}' not found in resource group "
                f"'{self.resource_group}'"
            ) from e
        except AzureError as e:
            raise LoadBalancerError(f"Failed to get load balancer '{self.lb_name}': {e}") from e

    def _save(self, lb: LoadBalancer) -> LoadBalancer:
        """Write the load balancer back; dump diagnostics on failure."""
        try:
            poller = self.client.load_balancers.begin_create_or_update(
                self.resource_group, self.lb_name, lb
            )
            return poller.result()
        except AzureError as e:
            logger.error(f"Failed to update load balancer '{self.lb_name}': {e}")
            logger.error(format_diagnostics(lb))
            raise LoadBalancerError(
                f"Failed to update load balancer '{self.lb_name}': {e}"
            ) from e

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def _find(items: list[Any] | None, name: str) -> Any | None:
        for item in items or []:
            if item.name and item.name.lower() == name.lower():
                return item
        return None

    def _require(self, items: list[Any] | None, name: str, what: str) -> Any:
        found = self._find(items, name)
        if found is None:
            available = ", ".join(item.name for item in items or []) or "none"
            raise LoadBalancerError(
                f"{what} '{name}' not found on load balancer '{self.lb_name}' "
                f"(available: {available})"
            )
        return found

    def _choose(self, items: list[Any] | None, what: str) -> Any:
        """Pick a frontend or pool when the caller did not name one."""
        items = list(items or [])
        if not items:
            raise LoadBalancerError(f"Load balancer '{self.lb_name}' has no {what}")
        if len(items) == 1:
            return items[0]
        candidates = [(item.name, "") for item in items]
        try:
            index = self.interaction.select(f"Select {what}:", candidates)
        except SelectionError as e:
            raise LoadBalancerError(str(e)) from e
        return items[index]

    @staticmethod
    def _outbound_rules_using(lb: LoadBalancer, frontend_name: str | None) -> list[str]:
        if not frontend_name:
            return []
        names = []
        for outbound in lb.outbound_rules or []:
            for ref in outbound.frontend_ip_configurations or []:
                ref_name = _resource_name(ref.id)
                if ref_name and ref_name.lower() == frontend_name.lower():
                    names.append(outbound.name)
                    break
        return names

    def _apply_snat_policy(
        self, lb: LoadBalancer, rule: LoadBalancingRule, changes: dict[str, tuple[Any, Any]]
    ) -> None:
        """Enforce disable_outbound_snat for frontends shared with outbound rules."""
        frontend_name = rule_value(rule, "frontend_ip_name")
        outbound = self._outbound_rules_using(lb, frontend_name)
        if not outbound or rule.disable_outbound_snat:
            return

        if not self.auto_fix_snat:
            raise LoadBalancerError(
                f"Frontend '{frontend_name}' is used by outbound rule(s) "
                f"{', '.join(outbound)}. Pass --disable-outbound-snat explicitly."
            )

        logger.warning(
            f"Frontend '{frontend_name}' is used by outbound rule(s) {', '.join(outbound)}; "
            "setting disable_outbound_snat=True"
        )
        previous = changes.get("disable_outbound_snat", (rule.disable_outbound_snat, None))[0]
        rule.disable_outbound_snat = True
        changes["disable_outbound_snat"] = (previous, True)

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    def list_rules(self) -> list[dict[str, Any]]:
        """List load balancing rules as plain dictionaries."""
        lb = self.get_load_balancer()
        return [
            {
                "name": rule.name,
                "protocol": sdk_value(rule.protocol),
                "frontend_port": rule.frontend_port,
                "backend_port": rule.backend_port,
                "frontend_ip_name": rule_value(rule, "frontend_ip_name"),
                "backend_pool_name": rule_value(rule, "backend_pool_name"),
                "probe_name": rule_value(rule, "probe_name"),
                "idle_timeout_in_minutes": rule.idle_timeout_in_minutes,
                "enable_floating_ip": rule.enable_floating_ip,
                "disable_outbound_snat": rule.disable_outbound_snat,
            }
            for rule in lb.load_balancing_rules or []
        ]

    def add_rule(
        self, name: str, spec: LBRuleSpec, force: bool = False, dry_run: bool = False
    ) -> LBOperationResult:
        """Create a rule, or reconcile an existing one.

        Raises:
            LoadBalancerError: If the rule exists with different settings and
                ``force`` is not set, or on validation/API failure
        """
        lb = self.get_load_balancer()
        existing = self._find(lb.load_balancing_rules, name)

        if existing is not None:
            changes = diff_rule(existing, spec)
            if not changes:
                logger.info(f"Rule '{name}' already matches requested settings")
                return LBOperationResult("add", name, "no-op", dry_run=dry_run)
            if not force:
                details = "; ".join(
                    f"{key}: {current!r} -> {requested!r}"
                    for key, (current, requested) in changes.items()
                )
                raise LoadBalancerError(
                    f"Rule '{name}' already exists with different settings "
                    f"({', '.join(changes)}): {details}. Use --force to update."
                )
            logger.info(f"Rule '{name}' differs; updating (force)")
            return self._update_rule(lb, existing, name, spec, dry_run)

        if spec.frontend_port is None or spec.backend_port is None:
            raise LoadBalancerError("frontend_port and backend_port are required to add a rule")

        protocol = spec.protocol or "Tcp"
        if (spec.frontend_port == 0 or spec.backend_port == 0) and protocol != "All":
            raise LoadBalancerError("Port 0 (HA ports) requires protocol All")

        if spec.frontend_ip_name:
            frontend = self._require(
                lb.frontend_ip_configurations, spec.frontend_ip_name, "Frontend IP configuration"
            )
        else:
            frontend = self._choose(lb.frontend_ip_configurations, "frontend IP configuration")

        if spec.backend_pool_name:
            pool = self._require(lb.backend_address_pools, spec.backend_pool_name, "Backend pool")
        else:
            pool = self._choose(lb.backend_address_pools, "backend pool")

        probe = None
        if spec.probe_name:
            probe = self._require(lb.probes, spec.probe_name, "Probe")

        rule = LoadBalancingRule(
            name=name,
            frontend_ip_configuration=SubResource(id=frontend.id),
            backend_address_pool=SubResource(id=pool.id),
            probe=SubResource(id=probe.id) if probe is not None else None,
            protocol=protocol,
            frontend_port=spec.frontend_port,
            backend_port=spec.backend_port,
            idle_timeout_in_minutes=spec.idle_timeout_in_minutes or MIN_IDLE_TIMEOUT,
            enable_floating_ip=bool(spec.enable_floating_ip),
            disable_outbound_snat=bool(spec.disable_outbound_snat),
            enable_tcp_reset=bool(spec.enable_tcp_reset),
            load_distribution=spec.load_distribution or "Default",
        )

        changes: dict[str, tuple[Any, Any]] = {
            "frontend_ip_name": (None, frontend.name),
            "backend_pool_name": (None, pool.name),
            "protocol": (None, protocol),
            "frontend_port": (None, spec.frontend_port),
            "backend_port": (None, spec.backend_port),
            "idle_timeout_in_minutes": (None, rule.idle_timeout_in_minutes),
        }
        if probe is not None:
            changes["probe_name"] = (None, probe.name)
        for key in ("enable_floating_ip", "disable_outbound_snat", "enable_tcp_reset"):
            if getattr(rule, key):
                changes[key] = (None, True)

        self._apply_snat_policy(lb, rule, changes)

        if dry_run:
            return LBOperationResult("add", name, "planned", changes, dry_run=True)

        lb.load_balancing_rules = list(lb.load_balancing_rules or []) + [rule]
        self._save(lb)
        logger.info(f"Created rule '{name}' on load balancer '{self.lb_name}'")
        return LBOperationResult("add", name, "created", changes)

    def update_rule(self, name: str, spec: LBRuleSpec, dry_run: bool = False) -> LBOperationResult:
        """Apply only the specified fields to an existing rule.

        Raises:
            LoadBalancerError: If the rule does not exist or the update fails
        """
        lb = self.get_load_balancer()
        existing = self._require(lb.load_balancing_rules, name, "Rule")
        return self._update_rule(lb, existing, name, spec, dry_run)

    def _update_rule(
        self,
        lb: LoadBalancer,
        rule: LoadBalancingRule,
        name: str,
        spec: LBRuleSpec,
        dry_run: bool,
    ) -> LBOperationResult:
        changes = diff_rule(rule, spec)

        for key, (_, requested) in changes.items():
            if key == "frontend_ip_name":
                fe = self._require(lb.frontend_ip_configurations, requested, "Frontend IP configuration")
                rule.frontend_ip_configuration = SubResource(id=fe.id)
            elif key == "backend_pool_name":
                pool = self._require(lb.backend_address_pools, requested, "Backend pool")
                rule.backend_address_pool = SubResource(id=pool.id)
                if getattr(rule, "backend_address_pools", None):
                    rule.backend_address_pools = [SubResource(id=pool.id)]
            elif key == "probe_name":
                probe = self._require(lb.probes, requested, "Probe")
                rule.probe = SubResource(id=probe.id)
            else:
                setattr(rule, key, requested)

        if (rule.frontend_port == 0 or rule.backend_port == 0) and sdk_value(rule.protocol) != "All":
            raise LoadBalancerError("Port 0 (HA ports) requires protocol All")

        self._apply_snat_policy(lb, rule, changes)

        if not changes:
            logger.info(f"Rule '{name}' already matches requested settings")
            return LBOperationResult("update", name, "no-op", dry_run=dry_run)

        if dry_run:
            return LBOperationResult("update", name, "planned", changes, dry_run=True)

        self._save(lb)
        logger.info(f"Updated rule '{name}': {', '.join(changes)}")
        return LBOperationResult("update", name, "updated", changes)

    def remove_rule(self, name: str, dry_run: bool = False) -> LBOperationResult:
        """Remove a rule.

        Raises:
            LoadBalancerError: If the rule does not exist or removal fails
        """
        lb = self.get_load_balancer()
        rule = self._require(lb.load_balancing_rules, name, "Rule")

        if dry_run:
            return LBOperationResult("remove", name, "planned", dry_run=True)

        lb.load_balancing_rules = [r for r in lb.load_balancing_rules if r is not rule]
        self._save(lb)
        logger.info(f"Removed rule '{name}' from load balancer '{self.lb_name}'")
        return LBOperationResult("remove", name, "removed")

    # ------------------------------------------------------------------
    # Probes
    # ------------------------------------------------------------------

    def list_probes(self) -> list[dict[str, Any]]:
        """List health probes as plain dictionaries."""
        lb = self.get_load_balancer()
        result = []
        for probe in lb.probes or []:
            used_by = [
                rule.name
                for rule in lb.load_balancing_rules or []
                if (rule_value(rule, "probe_name") or "").lower() == probe.name.lower()
            ]
            result.append(
                {
                    "name": probe.name,
                    "protocol": sdk_value(probe.protocol),
                    "port": probe.port,
                    "interval_in_seconds": probe.interval_in_seconds,
                    "number_of_probes": probe.number_of_probes,
                    "request_path": probe.request_path,
                    "used_by": used_by,
                }
            )
        return result

    @staticmethod
    def _check_probe_path(probe: Probe, path_explicit: bool, changes: dict) -> None:
        """Keep protocol and request path consistent."""
        protocol = sdk_value(probe.protocol)
        if protocol in ("Http", "Https") and not probe.request_path:
            raise LoadBalancerError(f"{protocol} probe requires a request path")
        if protocol == "Tcp" and probe.request_path:
            if path_explicit:
                raise LoadBalancerError("Tcp probe cannot have a request path")
            changes["request_path"] = (probe.request_path, None)
            probe.request_path = None

    def add_probe(
        self, name: str, spec: LBProbeSpec, force: bool = False, dry_run: bool = False
    ) -> LBOperationResult:
        """Create a probe, or reconcile an existing one (same rules as add_rule)."""
        lb = self.get_load_balancer()
        existing = self._find(lb.probes, name)

        if existing is not None:
            changes = diff_probe(existing, spec)
            if not changes:
                logger.info(f"Probe '{name}' already matches requested settings")
                return LBOperationResult("add-probe", name, "no-op", dry_run=dry_run)
            if not force:
                details = "; ".join(
                    f"{key}: {current!r} -> {requested!r}"
                    for key, (current, requested) in changes.items()
                )
                raise LoadBalancerError(
                    f"Probe '{name}' already exists with different settings "
                    f"({', '.join(changes)}): {details}. Use --force to update."
                )
            return self._update_probe(lb, existing, name, spec, dry_run)

        if spec.port is None:
            raise LoadBalancerError("port is required to add a probe")

        probe = Probe(
            name=name,
            protocol=spec.protocol or "Tcp",
            port=spec.port,
            interval_in_seconds=spec.interval_in_seconds or 15,
            number_of_probes=spec.number_of_probes or 2,
            request_path=spec.request_path,
        )
        changes: dict[str, tuple[Any, Any]] = {
            key: (None, getattr(probe, key))
            for key in ("protocol", "port", "interval_in_seconds", "number_of_probes", "request_path")
            if getattr(probe, key) is not None
        }
        self._check_probe_path(probe, spec.request_path is not None, changes)

        if dry_run:
            return LBOperationResult("add-probe", name, "planned", changes, dry_run=True)

        lb.probes = list(lb.probes or []) + [probe]
        self._save(lb)
        logger.info(f"Created probe '{name}' on load balancer '{self.lb_name}'")
        return LBOperationResult("add-probe", name, "created", changes)

    def update_probe(
        self, name: str, spec: LBProbeSpec, dry_run: bool = False
    ) -> LBOperationResult:
        """Apply only the specified fields to an existing probe."""
        lb = self.get_load_balancer()
        existing = self._require(lb.probes, name, "Probe")
        return self._update_probe(lb, existing, name, spec, dry_run)

    def _update_probe(
        self, lb: LoadBalancer, probe: Probe, name: str, spec: LBProbeSpec, dry_run: bool
    ) -> LBOperationResult:
        changes = diff_probe(probe, spec)
        for key, (_, requested) in changes.items():
            setattr(probe, key, requested)
        self._check_probe_path(probe, spec.request_path is not None, changes)

        if not changes:
            return LBOperationResult("update-probe", name, "no-op", dry_run=dry_run)
        if dry_run:
            return LBOperationResult("update-probe", name, "planned", changes, dry_run=True)

        self._save(lb)
        logger.info(f"Updated probe '{name}': {', '.join(changes)}")
        return LBOperationResult("update-probe", name, "updated", changes)

    def remove_probe(self, name: str, dry_run: bool = False) -> LBOperationResult:
        """Remove a probe that no rule references.

        Raises:
            LoadBalancerError: If the probe is missing or still in use
        """
        lb = self.get_load_balancer()
        probe = self._require(lb.probes, name, "Probe")

        used_by = [
            rule.name
            for rule in lb.load_balancing_rules or []
            if (rule_value(rule, "probe_name") or "").lower() == name.lower()
        ]
        if used_by:
            raise LoadBalancerError(
                f"Probe '{name}' is used by rule(s) {', '.join(used_by)}; "
                "update or remove those rules first"
            )

        if dry_run:
            return LBOperationResult("remove-probe", name, "planned", dry_run=True)

        lb.probes = [p for p in lb.probes if p is not probe]
        self._save(lb)
        logger.info(f"Removed probe '{name}' from load balancer '{self.lb_name}'")
        return LBOperationResult("remove-probe", name, "removed")


__all__ = [
    "LBOperationResult",
    "LBProbeSpec",
    "LBRuleSpec",
    "LoadBalancerError",
    "LoadBalancerManager",
    "diff_probe",
    "diff_rule",
    "format_diagnostics",
    "rule_value",
    "sdk_value",
]
