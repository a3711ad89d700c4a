"""Branch record factory."""

from typing import Any
from uuid import uuid4

from branchmigrator.models import Branch, DatabaseProvider


def make_branch(
    code: str = "BR001",
    provider: DatabaseProvider = DatabaseProvider.SQLITE,
    **overrides: Any,
) -> Branch:
    """
    Create a branch record with sensible defaults.

    Networked providers get a server and database name so that the
    connection factory accepts them.

    Example:
        >>> branch = make_branch("NYC", is_active=False)
    """
    values: dict[str, Any] = {
        "id": uuid4(),
        "code": code,
        "name": f"Branch {code}",
        "provider": provider,
    }
    if not provider.is_embedded:
        values.update(db_server="db.example.internal", db_name=f"branch_{code.lower()}")
    values.update(overrides)
    return Branch(**values)
