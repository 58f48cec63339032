from typing import Iterable, List

from kubexec.models import ContainerIdentity


def match_containers(
    containers: Iterable[ContainerIdentity], pattern: str
) -> List[ContainerIdentity]:
    """
    Select the containers whose name contains ``pattern``.

    Matching is plain substring containment; no glob or regex syntax is
    interpreted. Discovery order is kept, an empty pattern selects every
    container and no match yields an empty list.

    Args:
        containers: Containers in discovery order.
        pattern: Text the container name must contain.

    Returns:
        The matching containers, in the order they were given.
    """
    return [c for c in containers if pattern in c.container_name]
