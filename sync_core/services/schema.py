# SPDX-License-Identifier: Apache-2.0

"""
Remote table definitions.

Column lists for the four case tables and the SQL that provisions them
with owner row-level security. Child tables reference families with
ON DELETE CASCADE, so removing a family remotely removes its dependents.
"""

from typing import Dict, List, Tuple

from models.enums import SyncTable

# (column, SQL type) per table, excluding the id/user_id/timestamp columns
TABLE_COLUMNS: Dict[str, List[Tuple[str, str]]] = {
    SyncTable.FAMILIES.value: [
        ("ficha", "TEXT"),
        ("dataCadastro", "TEXT"),
        ("nomeAssistido", "TEXT"),
        ("estadoCivil", "TEXT"),
        ("nascimento", "TEXT"),
        ("idade", "INTEGER"),
        ("endereco", "TEXT"),
        ("bairro", "TEXT"),
        ("telefone", "TEXT"),
        ("whatsapp", "BOOLEAN"),
        ("cpf", "TEXT"),
        ("rg", "TEXT"),
        ("filhos", "BOOLEAN"),
        ("filhosCount", "INTEGER"),
        ("moradoresCount", "INTEGER"),
        ("renda", "TEXT"),
        ("comorbidade", "TEXT"),
        ("situacaoImovel", "TEXT"),
        ("observacao", "TEXT"),
        ("status", "TEXT"),
        ("ocupacao", "TEXT"),
        ("observacaoOcupacao", "TEXT"),
    ],
    SyncTable.MEMBERS.value: [
        ("familyId", "TEXT NOT NULL REFERENCES public.families(id) ON DELETE CASCADE"),
        ("nome", "TEXT"),
        ("parentesco", "TEXT"),
        ("nascimento", "TEXT"),
        ("idade", "INTEGER"),
        ("ocupacao", "TEXT"),
        ("observacaoOcupacao", "TEXT"),
        ("renda", "TEXT"),
        ("comorbidade", "TEXT"),
        ("escolaridade", "TEXT"),
        ("trabalho", "TEXT"),
    ],
    SyncTable.VISITS.value: [
        ("familyId", "TEXT NOT NULL REFERENCES public.families(id) ON DELETE CASCADE"),
        ("data", "TEXT"),
        ("vicentinos", "TEXT[]"),
        ("relato", "TEXT"),
        ("motivo", "TEXT"),
        ("necessidadesIdentificadas", "TEXT[]"),
    ],
    SyncTable.DELIVERIES.value: [
        ("familyId", "TEXT NOT NULL REFERENCES public.families(id) ON DELETE CASCADE"),
        ("data", "TEXT"),
        ("tipo", "TEXT"),
        ("responsavel", "TEXT"),
        ("observacoes", "TEXT"),
        ("status", "TEXT"),
        ("retiradoPor", "TEXT"),
        ("retiradoPorDetalhe", "TEXT"),
    ],
}

BASE_COLUMNS = ("id", "user_id", "created_at", "updated_at")

_UPDATED_AT_FUNCTION = """CREATE OR REPLACE FUNCTION public.set_updated_at()
RETURNS TRIGGER AS $$
BEGIN
  NEW.updated_at = NOW();
  RETURN NEW;
END;
$$ LANGUAGE plpgsql;"""


def known_columns(table: str) -> List[str]:
    """All columns accepted by a remote table."""
    return list(BASE_COLUMNS) + [name for name, _ in TABLE_COLUMNS[table]]


def _quote(column: str) -> str:
    # Mixed-case identifiers must be quoted in Postgres
    return f'"{column}"' if column != column.lower() else column


def render_table_sql(table: str) -> str:
    """SQL for one table, its trigger, indexes and owner policy."""
    lines = [
        "  id TEXT PRIMARY KEY",
        "  user_id UUID NOT NULL REFERENCES auth.users(id) ON DELETE CASCADE",
    ]
    lines += [f"  {_quote(name)} {sql_type}" for name, sql_type in TABLE_COLUMNS[table]]
    lines += [
        "  created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()",
        "  updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()",
    ]

    statements = [
        f"CREATE TABLE IF NOT EXISTS public.{table} (\n" + ",\n".join(lines) + "\n);",
        f"DROP TRIGGER IF EXISTS set_updated_at_{table} ON public.{table};",
        f"CREATE TRIGGER set_updated_at_{table}\nBEFORE UPDATE ON public.{table}\n"
        f"FOR EACH ROW EXECUTE FUNCTION public.set_updated_at();",
        f"CREATE INDEX IF NOT EXISTS {table}_user_id_idx ON public.{table}(user_id);",
    ]
    if table != SyncTable.FAMILIES.value:
        statements.append(
            f'CREATE INDEX IF NOT EXISTS {table}_family_id_idx ON public.{table}("familyId");'
        )
    statements += [
        f"ALTER TABLE public.{table} ENABLE ROW LEVEL SECURITY;",
        f'CREATE POLICY "{table}_owner_all"\nON public.{table}\nFOR ALL\n'
        f"USING (auth.uid() = user_id)\nWITH CHECK (auth.uid() = user_id);",
    ]
    return "\n\n".join(statements)


def render_schema_sql() -> str:
    """SQL provisioning all four tables, parents first."""
    parts = [_UPDATED_AT_FUNCTION]
    parts += [render_table_sql(table.value) for table in SyncTable]
    return "\n\n".join(parts) + "\n"
