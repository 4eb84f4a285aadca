"""
Projection and filtering of parsed trips into destination records.
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from trip_sync.ingestion.csv_processor import RawRecord

logger = logging.getLogger(__name__)

# One destination record, keyed by the output schema's field names
ProjectedRecord = Dict[str, Any]

TRIP_ID_COLUMN = 'ID da viagem/Uber Eats'
GROUP_COLUMN = 'Grupo'
FIRST_NAME_COLUMN = 'Nome'
LAST_NAME_COLUMN = 'Sobrenome'

VERIFICATION_STATUS_COLUMN = 'Status de Verificação'
PENDING_STATUS = 'Pendente'

_NUMBER_CHARS = re.compile(r'[^0-9,.\-]')


@dataclass(frozen=True)
class OutputField:
    """One output column and where its value comes from.

    Exactly one of ``source``, ``constant`` or ``concat`` is used: a copy of
    a source column, a fixed value, or the space-joined trimmed values of
    several source columns.
    """

    name: str
    source: Optional[str] = None
    constant: Optional[str] = None
    concat: Tuple[str, ...] = ()
    numeric: bool = False


@dataclass(frozen=True)
class OutputSchema:
    """Ordered output fields plus the identity and group columns."""

    name: str
    fields: Tuple[OutputField, ...]
    key_field: str
    group_source: str = GROUP_COLUMN
    field_names: Tuple[str, ...] = field(init=False)

    def __post_init__(self):
        names = tuple(f.name for f in self.fields)
        if len(set(names)) != len(names):
            raise ValueError(f"Schema {self.name} has duplicate field names")
        if self.key_field not in names:
            raise ValueError(f"Schema {self.name} key field '{self.key_field}' is not an output field")
        object.__setattr__(self, 'field_names', names)

    def key_of(self, record: ProjectedRecord) -> str:
        """Natural key of a projected record, trimmed."""
        return str(record.get(self.key_field) or '').strip()


TABULAR_SCHEMA = OutputSchema(
    name='sheets',
    key_field=TRIP_ID_COLUMN,
    fields=(
        OutputField(TRIP_ID_COLUMN, source=TRIP_ID_COLUMN),
        OutputField('Registro de data e hora da transação (UTC)', source='Registro de data e hora da transação (UTC)'),
        OutputField('Data de chegada (UTC)', source='Data de chegada (UTC)'),
        OutputField('Hora de chegada (UTC)', source='Hora de chegada (UTC)'),
        OutputField('Data de chegada (local)', source='Data de chegada (local)'),
        OutputField('Hora de chegada (local)', source='Hora de chegada (local)'),
        OutputField(FIRST_NAME_COLUMN, source=FIRST_NAME_COLUMN),
        OutputField(LAST_NAME_COLUMN, source=LAST_NAME_COLUMN),
        OutputField(GROUP_COLUMN, source=GROUP_COLUMN),
        OutputField('Serviço', source='Serviço'),
        OutputField('Cidade', source='Cidade'),
        OutputField('País', source='País'),
        OutputField('Distância (mi)', source='Distância (mi)'),
        OutputField('Duração (min)', source='Duração (min)'),
        OutputField('Endereço de partida', source='Endereço de partida'),
        OutputField('Endereço de destino', source='Endereço de destino'),
        OutputField('Outras cobranças (moeda local)', source='Outras cobranças (moeda local)'),
        OutputField(VERIFICATION_STATUS_COLUMN, constant=PENDING_STATUS),
    ),
)

DOCUMENT_SCHEMA = OutputSchema(
    name='firestore',
    key_field='trip_id',
    fields=(
        OutputField('trip_id', source=TRIP_ID_COLUMN),
        OutputField('request_date', source='Data da solicitação (local)'),
        OutputField('request_time', source='Hora da solicitação (local)'),
        OutputField('arrival_time', source='Hora de chegada (local)'),
        OutputField('full_name', concat=(FIRST_NAME_COLUMN, LAST_NAME_COLUMN)),
        OutputField('group', source=GROUP_COLUMN),
        OutputField('service', source='Serviço'),
        OutputField('city', source='Cidade'),
        OutputField('country', source='País'),
        OutputField('distance_mi', source='Distância (mi)', numeric=True),
        OutputField('duration_min', source='Duração (min)', numeric=True),
        OutputField('pickup_address', source='Endereço de partida'),
        OutputField('dropoff_address', source='Endereço de destino'),
        OutputField('total_value', source='Valor total: BRL', numeric=True),
    ),
)


def parse_number(value: str) -> Optional[float]:
    """Parse a number written with either decimal convention.

    ``1.5``, ``1,5``, ``1.234,56`` and ``1,234.56`` are all accepted;
    currency symbols and spaces are ignored. Returns None when nothing
    numeric is left.
    """
    cleaned = _NUMBER_CHARS.sub('', value or '')
    if ',' in cleaned and '.' in cleaned:
        if cleaned.rfind(',') > cleaned.rfind('.'):
            cleaned = cleaned.replace('.', '').replace(',', '.')
        else:
            cleaned = cleaned.replace(',', '')
    elif ',' in cleaned:
        cleaned = cleaned.replace(',', '.')

    try:
        return float(cleaned)
    except ValueError:
        return None


class RecordTransformer:
    """Filters raw trips by group and projects them onto an output schema."""

    def __init__(self, schema: OutputSchema, excluded_groups: Iterable[str] = ()):
        self.schema = schema
        self.excluded_groups: FrozenSet[str] = frozenset(excluded_groups)

    def is_excluded(self, record: RawRecord) -> bool:
        """True when the record's group is in the exclusion set."""
        if not self.excluded_groups:
            return False
        group = (record.get(self.schema.group_source) or '').strip()
        return group in self.excluded_groups

    def transform(self, records: List[RawRecord]) -> List[ProjectedRecord]:
        """Drop excluded trips and project the rest, keeping input order."""
        if records and TRIP_ID_COLUMN not in records[0]:
            logger.warning(f"Source rows have no '{TRIP_ID_COLUMN}' column")

        projected = []
        excluded = 0

        for record in records:
            if self.is_excluded(record):
                excluded += 1
                continue
            projected.append(self.project(record))

        if excluded:
            logger.info(f"Excluded {excluded} trips by group {sorted(self.excluded_groups)}")

        logger.info(f"Projected {len(projected)} of {len(records)} trips onto {self.schema.name} schema")
        return projected

    def project(self, record: RawRecord) -> ProjectedRecord:
        """Build one output record holding every schema field."""
        output = {}

        for output_field in self.schema.fields:
            output[output_field.name] = self._field_value(output_field, record)

        if tuple(output) != self.schema.field_names:
            raise ValueError(f"Projected record does not match {self.schema.name} schema")

        return output

    def _field_value(self, output_field: OutputField, record: RawRecord) -> Any:
        if output_field.constant is not None:
            return output_field.constant

        if output_field.concat:
            parts = [(record.get(column) or '').strip() for column in output_field.concat]
            return ' '.join(part for part in parts if part)

        raw = record.get(output_field.source) or ''

        if not output_field.numeric:
            return raw

        if not raw.strip():
            return 0.0

        number = parse_number(raw)
        if number is None:
            logger.warning(f"Could not parse {output_field.source} value '{raw}', storing 0")
            return 0.0
        return number
