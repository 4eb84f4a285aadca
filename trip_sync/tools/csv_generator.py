"""
CSV generator for simulating the Uber daily trip export.
"""

import csv
import uuid
import random
import argparse
from datetime import datetime, timedelta
from io import StringIO
from pathlib import Path
from typing import Dict, List, Optional

import pytz

EXPORT_COLUMNS = [
    'ID da viagem/Uber Eats',
    'Registro de data e hora da transação (UTC)',
    'Data da solicitação (local)',
    'Hora da solicitação (local)',
    'Data de chegada (UTC)',
    'Hora de chegada (UTC)',
    'Data de chegada (local)',
    'Hora de chegada (local)',
    'Nome',
    'Sobrenome',
    'Grupo',
    'Serviço',
    'Cidade',
    'País',
    'Distância (mi)',
    'Duração (min)',
    'Endereço de partida',
    'Endereço de destino',
    'Outras cobranças (moeda local)',
    'Valor total: BRL',
]

FIRST_NAMES = ["Ana", "Bruno", "Carla", "Diego", "Elisa", "Fábio", "Gabriela", "Hugo"]
LAST_NAMES = ["Silva", "Souza", "Oliveira", "Pereira", "Costa", "Almeida"]
GROUPS = ["OPERACIONAL", "ADMINISTRATIVO", "COMERCIAL", "DIRETORIA"]
SERVICES = ["UberX", "Comfort", "Black", "Flash"]
CITIES = ["São Paulo", "Rio de Janeiro", "Belo Horizonte", "Curitiba"]

SAO_PAULO_TZ = pytz.timezone('America/Sao_Paulo')


class TripCSVGenerator:
    """Generates realistic trip export files for demos and tests."""

    def __init__(self, seed: Optional[int] = None):
        self.random = random.Random(seed)

    def generate_trip(self, day: datetime, group: str = None) -> Dict[str, str]:
        """Generate a single trip row for the given day."""
        requested = SAO_PAULO_TZ.localize(day.replace(
            hour=self.random.randint(6, 22),
            minute=self.random.randint(0, 59),
            second=0,
            microsecond=0
        ))
        duration = self.random.randint(5, 90)
        arrived = requested + timedelta(minutes=duration)
        arrived_utc = arrived.astimezone(pytz.UTC)
        distance = round(self.random.uniform(0.5, 30.0), 2)
        total = round(5 + distance * self.random.uniform(1.5, 3.5), 2)

        return {
            'ID da viagem/Uber Eats': str(uuid.UUID(int=self.random.getrandbits(128), version=4)),
            'Registro de data e hora da transação (UTC)': arrived_utc.strftime('%Y-%m-%dT%H:%M:%SZ'),
            'Data da solicitação (local)': requested.strftime('%Y-%m-%d'),
            'Hora da solicitação (local)': requested.strftime('%H:%M'),
            'Data de chegada (UTC)': arrived_utc.strftime('%Y-%m-%d'),
            'Hora de chegada (UTC)': arrived_utc.strftime('%H:%M'),
            'Data de chegada (local)': arrived.strftime('%Y-%m-%d'),
            'Hora de chegada (local)': arrived.strftime('%H:%M'),
            'Nome': self.random.choice(FIRST_NAMES),
            'Sobrenome': self.random.choice(LAST_NAMES),
            'Grupo': group or self.random.choice(GROUPS),
            'Serviço': self.random.choice(SERVICES),
            'Cidade': self.random.choice(CITIES),
            'País': 'Brasil',
            'Distância (mi)': f"{distance:.2f}".replace('.', ','),
            'Duração (min)': str(duration),
            'Endereço de partida': f"Rua {self.random.randint(1, 999)}, {self.random.choice(CITIES)}",
            'Endereço de destino': f"Avenida {self.random.randint(1, 999)}, {self.random.choice(CITIES)}",
            'Outras cobranças (moeda local)': '0,00',
            'Valor total: BRL': f"{total:.2f}".replace('.', ','),
        }

    def render(self, trips: List[Dict[str, str]], generated_at: datetime = None) -> bytes:
        """Render trips as an export file: banner line, header, quoted rows."""
        generated_at = generated_at or datetime.now()
        buffer = StringIO()
        buffer.write(f"Relatório gerado em {generated_at.strftime('%Y-%m-%d')}\n")

        writer = csv.DictWriter(
            buffer,
            fieldnames=EXPORT_COLUMNS,
            delimiter=';',
            quoting=csv.QUOTE_MINIMAL,
            lineterminator='\n'
        )
        writer.writeheader()
        writer.writerows(trips)
        return buffer.getvalue().encode('utf-8')

    def generate_export(self, day: datetime, count: int = 100) -> bytes:
        """Generate a whole export file for ``day``."""
        trips = [self.generate_trip(day) for _ in range(count)]
        return self.render(trips, generated_at=day + timedelta(days=1))

    def export_filename(self, day: datetime) -> str:
        return f"daily_trips-{day.year}_{day.month:02d}_{day.day:02d}.csv"


def main():
    """Main entry point for export generation."""
    parser = argparse.ArgumentParser(description='Generate an Uber daily trip export for testing')
    parser.add_argument('--output-dir', '-o', required=True, help='Directory to write the export to')
    parser.add_argument('--count', '-c', type=int, default=100, help='Number of trips to generate')
    parser.add_argument('--date', '-d', help='Export date (YYYY-MM-DD), defaults to yesterday')
    parser.add_argument('--seed', type=int, help='Random seed for reproducible output')

    args = parser.parse_args()

    day = datetime.strptime(args.date, '%Y-%m-%d') if args.date else datetime.now() - timedelta(days=1)
    day = day.replace(hour=0, minute=0, second=0, microsecond=0)

    generator = TripCSVGenerator(seed=args.seed)
    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    output_file = output_dir / generator.export_filename(day)
    output_file.write_bytes(generator.generate_export(day, args.count))

    print(f"✅ Generated {args.count} trips in {output_file}")


if __name__ == "__main__":
    main()
