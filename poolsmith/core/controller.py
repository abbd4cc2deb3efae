"""Pool lifecycle: create, read, update, delete and import."""
from typing import List, Optional

from poolsmith.core.command_layer import CommandLayer
from poolsmith.core.config import PoolsmithConfig, get_config
from poolsmith.core.logger import get_logger
from poolsmith.core.properties import (
    diff_properties,
    parse_property_blocks,
    populate_resource,
    property_names,
    refresh_declared,
)
from poolsmith.core.topology import encode_layout, layout_from_blocks
from poolsmith.models.errors import (
    CommandError,
    MutationFailure,
    PoolCreationError,
    PoolDestructionError,
    PoolMutationError,
    PoolNotFoundError,
)
from poolsmith.models.pool import CreationSpec, Pool, PropertyMode
from poolsmith.models.resource import PoolResource

logger = get_logger(__name__)


class PoolController:
    """Turns lifecycle requests into zpool operations.

    Holds no pool state between calls: every operation re-observes the pool
    through the command layer. The pool guid is the resource identity, so a
    pool renamed out-of-band is still found.
    """

    def __init__(self, commands: CommandLayer, context: Optional[PoolsmithConfig] = None):
        """
        Args:
            commands: Storage subsystem command layer
            context: Runtime config passed to every command (defaults to global config)
        """
        self.commands = commands
        self.context = context or get_config()

    def create(self, resource: PoolResource) -> PoolResource:
        """Create the pool described by `resource`.

        On failure the resource is left untouched (still absent).

        Raises:
            TopologyError: If the layout is malformed or empty
            PropertyConflictError: If a property is declared twice
            PoolCreationError: If the subsystem rejects the pool
        """
        layout = layout_from_blocks(resource.device, resource.mirror, require_devices=True)
        declared = parse_property_blocks(resource.property)
        mode = resource.mode

        spec = CreationSpec(name=resource.name, topology=encode_layout(layout), properties=declared)
        try:
            pool = self.commands.create(self.context, spec)
        except CommandError as e:
            logger.error(f"Failed to create pool {resource.name}: {e.message}")
            raise PoolCreationError(f"Failed to create pool '{resource.name}': {e.message}") from e

        logger.info(f"Created pool {resource.name} (guid {pool.guid})")
        populate_resource(resource, pool)
        resource.property_mode = mode.value
        return resource

    def read(self, resource: PoolResource) -> PoolResource:
        """Refresh `resource` from the live pool.

        If no pool carries the resource's guid any more, the resource is
        marked absent (empty id) instead of raising.

        Raises:
            CommandError: For any other subsystem failure
        """
        if not resource.id:
            return resource

        try:
            pool = self._observe(resource.id, resource.property, resource.mode)
        except PoolNotFoundError:
            logger.warning(f"Pool {resource.name} (guid {resource.id}) no longer exists")
            resource.id = ""
            return resource

        resource.property = refresh_declared(resource.property, pool)
        return populate_resource(resource, pool)

    def update(self, current: PoolResource, desired: PoolResource) -> PoolResource:
        """Converge the pool from `current` to `desired`.

        Renames first, then applies property set/reset operations. Every
        operation is attempted even when an earlier one fails.

        Raises:
            PoolMutationError: Listing every failed rename/set/reset
        """
        failures: List[MutationFailure] = []
        name = current.name

        try:
            name = self.commands.resolve_name(self.context, current.id)
        except PoolNotFoundError:
            logger.warning(f"Pool guid {current.id} not found; using recorded name {name}")

        if desired.name != name:
            try:
                self.commands.rename(self.context, name, desired.name)
                logger.info(f"Renamed pool {name} -> {desired.name}")
                name = desired.name
            except CommandError as e:
                failures.append(MutationFailure('rename', desired.name, e.message))

        old = parse_property_blocks(current.property)
        new = parse_property_blocks(desired.property)

        # Only dropped properties need their observed source
        dropped = sorted(set(old) - set(new))
        observed = None
        if dropped:
            try:
                observed = self.commands.describe(self.context, name, dropped).properties
            except CommandError as e:
                logger.warning(f"Could not read sources of {', '.join(dropped)}: {e.message}")
        diff = diff_properties(old, new, observed)

        for prop, value in diff.to_set.items():
            try:
                self.commands.set_property(self.context, name, prop, value)
            except CommandError as e:
                failures.append(MutationFailure('set', prop, e.message))

        for prop in diff.to_reset:
            try:
                self.commands.reset_property(self.context, name, prop)
            except CommandError as e:
                failures.append(MutationFailure('reset', prop, e.message))

        if failures:
            raise PoolMutationError(name, failures)

        result = PoolResource(
            name=name,
            id=current.id,
            device=desired.device,
            mirror=desired.mirror,
            property=desired.property,
            property_mode=desired.mode.value,
        )
        try:
            pool = self._observe(current.id, desired.property, desired.mode)
        except PoolNotFoundError:
            result.id = ""
            return result
        return populate_resource(result, pool)

    def delete(self, resource: PoolResource) -> PoolResource:
        """Destroy the pool. A pool that is already gone is not an error.

        Raises:
            PoolDestructionError: If the subsystem refuses to destroy the pool
        """
        if not resource.id:
            return resource

        try:
            name = self.commands.resolve_name(self.context, resource.id)
        except PoolNotFoundError:
            logger.info(f"Pool guid {resource.id} already absent")
            resource.id = ""
            return resource
        except CommandError as e:
            logger.error(f"Failed to look up pool guid {resource.id}: {e.message}")
            raise PoolDestructionError(
                f"Failed to destroy pool '{resource.name}' (guid {resource.id}): {e.message}"
            ) from e

        try:
            self.commands.destroy(self.context, name)
        except PoolNotFoundError:
            logger.info(f"Pool {name} vanished before destroy")
        except CommandError as e:
            logger.error(f"Failed to destroy pool {name}: {e.message}")
            raise PoolDestructionError(f"Failed to destroy pool '{name}': {e.message}") from e

        logger.info(f"Destroyed pool {name}")
        resource.id = ""
        return resource

    def import_pool(self, identifier: str) -> PoolResource:
        """Adopt an existing pool by guid or name.

        Pool names must start with a letter, so an all-digit identifier is a
        guid. The imported resource starts in "defined" mode with no
        declared properties.

        Raises:
            PoolNotFoundError: If no pool matches
        """
        identifier = identifier.strip()
        if identifier.isdigit():
            name = self.commands.resolve_name(self.context, identifier)
        else:
            name = identifier

        pool = self.commands.describe(self.context, name, [])
        resource = PoolResource(name=name, property_mode=PropertyMode.DEFINED.value)
        populate_resource(resource, pool)
        logger.info(f"Imported pool {name} (guid {resource.id})")
        return resource

    def observe(self, resource: PoolResource) -> Pool:
        """Return the live pool for a resource, scoped by its property mode.

        Raises:
            PoolNotFoundError: If the pool is gone
        """
        return self._observe(resource.id, resource.property, resource.mode)

    def _observe(self, guid: str, declared_blocks, mode: PropertyMode) -> Pool:
        name = self.commands.resolve_name(self.context, guid)
        wanted = None if mode == PropertyMode.ALL else property_names(declared_blocks)
        return self.commands.describe(self.context, name, wanted)
