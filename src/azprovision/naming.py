"""Resource name generation.

Every run generates all of its names up front, before the first remote call,
and keeps them for the run's lifetime. The generator is injectable so tests
can produce deterministic names; production uses a random numeric suffix.
"""

import random
from typing import Protocol

from azprovision.models import ResourceNames

# Prefixes per resource; storage account names must stay lowercase alphanumeric.
NAME_PREFIXES = {
    "resource_group": "testrg",
    "virtual_machine": "testvm",
    "storage_account": "testacc",
    "virtual_network": "testvnet",
    "subnet": "testsubnet",
    "public_ip": "testpip",
    "network_interface": "testnic",
    "ip_configuration": "testcrpip",
    "domain_name_label": "testdomainname",
    "os_disk": "testosdisk",
}


class NameGenerator(Protocol):
    """Produces a resource name from a prefix."""

    def generate(self, prefix: str) -> str:
        """Return a name that starts with ``prefix``."""


class RandomSuffixNameGenerator:
    """Appends a random number in ``[0, upper_bound)`` to the prefix."""

    def __init__(self, upper_bound: int = 10000, rng: random.Random | None = None):
        if upper_bound <= 0:
            raise ValueError("upper_bound must be positive")
        self.upper_bound = upper_bound
        self._rng = rng or random.Random()

    def generate(self, prefix: str) -> str:
        return f"{prefix}{self._rng.randrange(self.upper_bound)}"


class FixedSuffixNameGenerator:
    """Deterministic generator: the same prefix always maps to the same name.

    Useful for tests and for re-running against resources created earlier.
    """

    def __init__(self, suffix: str = "0"):
        self.suffix = suffix

    def generate(self, prefix: str) -> str:
        return f"{prefix}{self.suffix}"


def generate_resource_names(generator: NameGenerator | None = None) -> ResourceNames:
    """Generate the full, immutable set of names for one run."""
    generator = generator or RandomSuffixNameGenerator()
    return ResourceNames(
        **{field_name: generator.generate(prefix) for field_name, prefix in NAME_PREFIXES.items()}
    )


__all__ = [
    "NAME_PREFIXES",
    "NameGenerator",
    "FixedSuffixNameGenerator",
    "RandomSuffixNameGenerator",
    "generate_resource_names",
]
