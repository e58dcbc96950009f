"""Locator composition for process records."""


def normalize(address: str) -> str:
    """Strip trailing slashes from an address."""
    return address.rstrip("/")


def build_link(base: str, suffix: str) -> str:
    """Append ``suffix`` as a new path segment of ``base``."""
    return f"{normalize(base)}/{suffix}"


def sibling_link(self_link: str, pid: int) -> str:
    """Replace the last segment of a record locator (``.../12`` -> ``.../40``)."""
    parent = normalize(self_link).rsplit("/", 1)[0]
    return f"{parent}/{pid}"
