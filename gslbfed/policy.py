"""GlobalDeploymentPolicy handlers.

Only one policy object is authoritative at a time; it is recorded in the
GDPObj pointer. Policy changes are detected through the filter checksum.
A change to selectors or clusters re-runs the filter over every stored
object, while a change limited to traffic weights only re-announces the
accepted hostnames downstream.

Handlers are coroutines run on the event loop. Namespace listing goes
through the cluster API and is pushed to a worker thread.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError

from .exceptions import FilterStateError
from .filter import GDPObj, single_label
from .ingestion import FederationState, publish_all_accepted, reevaluate_objects
from .logging_config import get_logger, log_function_entry, log_function_exit
from .models import GlobalDeploymentPolicy

logger = get_logger(__name__)

# (cluster, label key, label value) -> namespaces carrying that label
NamespaceLister = Callable[[str, str, str], List[str]]


def _membership_unchanged(old: GlobalDeploymentPolicy, new: GlobalDeploymentPolicy) -> bool:
    old_rules, new_rules = old.spec.match_rules, new.spec.match_rules
    return (
        single_label(old_rules.app_selector.label) == single_label(new_rules.app_selector.label)
        and single_label(old_rules.namespace_selector.label) == single_label(new_rules.namespace_selector.label)
        and sorted(old.spec.match_clusters) == sorted(new.spec.match_clusters)
    )


class GDPController:
    """Applies policy add/update/delete events to the global filter."""

    def __init__(self, state: FederationState, gdp_obj: GDPObj,
                 namespace_lister: Optional[NamespaceLister] = None):
        self.state = state
        self.gdp_obj = gdp_obj
        self.namespace_lister = namespace_lister
        self.current: Optional[GlobalDeploymentPolicy] = None
        # Events are applied one at a time, in arrival order.
        self._events_lock = asyncio.Lock()

    def is_authoritative(self, gdp: GlobalDeploymentPolicy) -> bool:
        if self.gdp_obj.is_empty():
            return True
        return self.gdp_obj.get() == (gdp.name, gdp.namespace)

    async def _populate_namespaces(self) -> None:
        """Select the labelled namespaces of every applicable cluster.

        The lister talks to the cluster API, so it runs in a worker thread.
        """
        try:
            label = self.state.global_filter.get_ns_filter_label()
        except FilterStateError:
            return
        if self.namespace_lister is None:
            logger.warning("Namespace selector configured but no namespace lister available")
            return
        for cluster in self.state.global_filter.snapshot().applicable_clusters:
            try:
                namespaces = await asyncio.to_thread(self.namespace_lister, cluster, label.key, label.value)
            except Exception as e:
                logger.error("Failed to list namespaces", cluster=cluster, error=str(e))
                continue
            for ns in namespaces:
                self.state.global_filter.add_ns_to_ns_filter(cluster, ns)

    async def add_gdp(self, gdp: GlobalDeploymentPolicy) -> bool:
        log_function_entry(logger, "add_gdp", gdp=gdp.name, namespace=gdp.namespace)
        if not self.is_authoritative(gdp):
            name, ns = self.gdp_obj.get()
            logger.error("A policy object already exists, ignoring this one",
                         gdp=gdp.name, namespace=gdp.namespace,
                         existing_gdp=name, existing_namespace=ns)
            return False

        self.gdp_obj.set(gdp.name, gdp.namespace)
        self.state.global_filter.add_to_filter(gdp)
        await self._populate_namespaces()
        self.current = gdp
        accepted, rejected = reevaluate_objects(self.state)
        log_function_exit(logger, "add_gdp", accepted=len(accepted), rejected=len(rejected))
        return True

    async def update_gdp(self, old: GlobalDeploymentPolicy, new: GlobalDeploymentPolicy) -> Tuple[bool, bool]:
        """Returns (filter updated, traffic weights changed)."""
        if not self.is_authoritative(new):
            logger.error("Update for a non authoritative policy object, ignoring",
                         gdp=new.name, namespace=new.namespace)
            return False, False

        updated, weight_changed = self.state.global_filter.update_global_filter(old, new)
        self.current = new
        if not updated:
            logger.debug("Policy checksum unchanged, nothing to do", gdp=new.name)
            return False, False

        if weight_changed and _membership_unchanged(old, new):
            keys = publish_all_accepted(self.state, "traffic weight changed")
            logger.info("Traffic weights changed, re-announced accepted hostnames", count=len(keys))
            return True, True

        # Kept selections carry no entry for newly matched clusters.
        await self._populate_namespaces()
        reevaluate_objects(self.state)
        if weight_changed:
            publish_all_accepted(self.state, "traffic weight changed")
        return True, weight_changed

    async def delete_gdp(self, gdp: GlobalDeploymentPolicy) -> bool:
        if not self.is_authoritative(gdp):
            logger.warning("Delete for a non authoritative policy object, ignoring",
                           gdp=gdp.name, namespace=gdp.namespace)
            return False
        self.state.global_filter.delete_from_global_filter(gdp)
        self.gdp_obj.clear()
        self.current = None
        reevaluate_objects(self.state)
        logger.info("Policy deleted, all objects rejected", gdp=gdp.name, namespace=gdp.namespace)
        return True

    async def handle_event(self, event_type: str, obj: Dict[str, Any]) -> None:
        """Dispatch a watch event carrying the raw custom resource."""
        try:
            gdp = GlobalDeploymentPolicy.model_validate(obj)
        except ValidationError as e:
            logger.error("Malformed policy object", event_type=event_type, error=str(e))
            return

        async with self._events_lock:
            if event_type == "DELETED":
                await self.delete_gdp(gdp)
            elif self.current is None:
                await self.add_gdp(gdp)
            elif event_type in ("ADDED", "MODIFIED"):
                await self.update_gdp(self.current, gdp)
