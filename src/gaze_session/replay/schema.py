"""Column layouts that replay understands, resolved against a log's header."""
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from ..core.fields import SCHEMA_VERSION, Field, vector_fields
from ..errors import SchemaMismatchError
from ..sinks.session_log import SessionLogger


@dataclass(frozen=True)
class ReplaySchema:
    """
    The fields replay reads from a log, by name.

    Columns are located through the header, so extra, missing optional or
    reordered fields do not shift anything. A header lacking any of the
    fields listed here is rejected as a whole.
    """
    version: int
    markers: tuple[str, ...]
    openness_right: str
    openness_left: str
    cue: str
    # Markers (position, target, up) from which the head rotation is rebuilt.
    pose: tuple[str, str, str]
    time: str = SessionLogger.TIME_COLUMN

    @property
    def columns(self) -> list[str]:
        names = [self.time, self.cue]
        for base in self.markers:
            names.extend(vector_fields(base))
        names.extend((self.openness_right, self.openness_left))
        return names

    def resolve(self, header: Sequence[str]) -> "ColumnMap":
        positions = {name: index for index, name in enumerate(header)}
        missing = [name for name in self.columns if name not in positions]
        if missing:
            raise SchemaMismatchError(
                f"Log header does not match replay schema v{self.version}; missing columns: {', '.join(missing)}"
            )
        if header[0] != self.time:
            raise SchemaMismatchError(f"First column must be '{self.time}', found '{header[0]}'.")
        return ColumnMap(self, {name: positions[name] for name in self.columns}, len(header))


@dataclass(frozen=True)
class ColumnMap:
    schema: ReplaySchema
    indices: dict[str, int]
    width: int

    def __getitem__(self, name: str) -> int:
        return self.indices[name]

    def vector(self, base: str) -> tuple[int, int, int]:
        return tuple(self.indices[name] for name in vector_fields(base))


SCHEMA_V1 = ReplaySchema(
    version=SCHEMA_VERSION,
    markers=(Field.HEAD, Field.UP, Field.VIEW, Field.HIT_RIGHT, Field.HIT_LEFT, Field.FOCUS),
    openness_right=Field.OPENNESS_RIGHT,
    openness_left=Field.OPENNESS_LEFT,
    cue=Field.CLIP,
    pose=(Field.HEAD, Field.VIEW, Field.UP),
)

SCHEMAS: dict[int, ReplaySchema] = {SCHEMA_V1.version: SCHEMA_V1}


def detect_schema(header: Sequence[str], candidates: Optional[Iterable[ReplaySchema]] = None) -> ColumnMap:
    """Resolves the header against the newest schema version it satisfies."""
    candidates = sorted(candidates or SCHEMAS.values(), key=lambda s: s.version, reverse=True)
    errors = []
    for schema in candidates:
        try:
            return schema.resolve(header)
        except SchemaMismatchError as e:
            errors.append(str(e))
    raise SchemaMismatchError("; ".join(errors) or "No replay schema available.")
