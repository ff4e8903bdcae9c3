from dataclasses import dataclass, field

ADMIN_SCOPES = frozenset({"sweeps:run", "review:write", "review:read", "sources:read", "sources:write"})


@dataclass(slots=True)
class Principal:
    subject: str
    scopes: set[str] = field(default_factory=set)

    def require_scopes(self, required: set[str]) -> None:
        missing = required - self.scopes
        if missing:
            raise PermissionError(f"missing required scopes: {sorted(missing)}")


def parse_scope_header(scope_header: str | None) -> set[str]:
    if not scope_header:
        return set()
    return {chunk.strip() for chunk in scope_header.split(",") if chunk.strip()}
