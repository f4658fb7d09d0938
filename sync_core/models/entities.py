# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
Core entity models for the SSVP case-management sync core.
"""

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .base import RecordBase
from .enums import CollectedBy, DeliveryStatus, FamilyStatus, SyncTable


class Family(RecordBase):
    """Assisted family, registered under its head of household."""

    ficha: Optional[str] = Field(None, description="Record sheet number")
    data_cadastro: Optional[str] = Field(None, description="Registration date")
    nome_assistido: Optional[str] = Field(None, description="Head of household name")
    estado_civil: Optional[str] = None
    nascimento: Optional[str] = None
    idade: Optional[int] = None
    endereco: Optional[str] = None
    bairro: Optional[str] = None
    telefone: Optional[str] = None
    whatsapp: Optional[bool] = None
    cpf: Optional[str] = None
    rg: Optional[str] = None
    filhos: Optional[bool] = None
    filhos_count: Optional[int] = None
    moradores_count: Optional[int] = Field(None, description="Household size")
    renda: Optional[str] = Field(None, description="Household income")
    comorbidade: Optional[str] = Field(None, description="Health notes")
    situacao_imovel: Optional[str] = None
    observacao: Optional[str] = None
    status: Optional[FamilyStatus] = Field(default=FamilyStatus.ACTIVE)
    ocupacao: Optional[str] = None
    observacao_ocupacao: Optional[str] = None


class Member(RecordBase):
    """Household member of an assisted family."""

    family_id: str = Field(..., description="Owning family identifier")
    nome: Optional[str] = None
    parentesco: Optional[str] = Field(None, description="Relationship to the head of household")
    nascimento: Optional[str] = None
    idade: Optional[int] = None
    ocupacao: Optional[str] = None
    observacao_ocupacao: Optional[str] = None
    renda: Optional[str] = None
    comorbidade: Optional[str] = None
    escolaridade: Optional[str] = None
    trabalho: Optional[str] = None


class Visit(RecordBase):
    """Home visit made by a group of volunteers."""

    family_id: str = Field(..., description="Visited family identifier")
    data: Optional[str] = Field(None, description="Visit date")
    vicentinos: List[str] = Field(default_factory=list, description="Attending volunteers, in order")
    relato: Optional[str] = Field(None, description="Visit narrative")
    motivo: Optional[str] = Field(None, description="Reason code")
    necessidades_identificadas: List[str] = Field(default_factory=list)

    @field_validator('vicentinos', 'necessidades_identificadas', mode='before')
    @classmethod
    def coerce_list(cls, v):
        """Null array columns come back from the remote store as None."""
        if v is None:
            return []
        return v


class Delivery(RecordBase):
    """Aid delivery (food basket, etc.) to a family."""

    family_id: str = Field(..., description="Receiving family identifier")
    data: Optional[str] = Field(None, description="Delivery date")
    tipo: Optional[str] = Field(None, description="Aid type")
    responsavel: Optional[str] = Field(None, description="Responsible volunteer")
    status: Optional[DeliveryStatus] = None
    retirado_por: Optional[CollectedBy] = None
    retirado_por_detalhe: Optional[str] = None
    observacoes: Optional[str] = None


Record = Union[Family, Member, Visit, Delivery]

RECORD_TYPES = {
    SyncTable.FAMILIES: Family,
    SyncTable.MEMBERS: Member,
    SyncTable.VISITS: Visit,
    SyncTable.DELIVERIES: Delivery,
}


class Snapshot(BaseModel):
    """Complete value of the four collections at a point in time."""

    model_config = ConfigDict(validate_assignment=True)

    families: List[Family] = Field(default_factory=list)
    members: List[Member] = Field(default_factory=list)
    visits: List[Visit] = Field(default_factory=list)
    deliveries: List[Delivery] = Field(default_factory=list)

    def clone(self) -> "Snapshot":
        """Return an independent deep copy."""
        return self.model_copy(deep=True)

    def records(self, table: Union[SyncTable, str]) -> List[RecordBase]:
        """Get the collection backing a remote table."""
        return getattr(self, SyncTable(table).value)

    def is_empty(self) -> bool:
        return not (self.families or self.members or self.visits or self.deliveries)

    def to_dict(self) -> Dict[str, List[Dict[str, Any]]]:
        """Serialize using remote column names."""
        return {
            table.value: [record.to_row() for record in self.records(table)]
            for table in SyncTable
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        return cls.model_validate({
            table.value: data.get(table.value) or []
            for table in SyncTable
        })


class UserProfile(BaseModel):
    """Display profile of the signed-in volunteer."""

    name: str = "Vicentino"
    initials: str = "V"
    conference: str = "Conferência SSVP"

    @classmethod
    def from_metadata(cls, metadata: Optional[Dict[str, Any]]) -> "UserProfile":
        """Build a profile from authentication user metadata."""
        if not metadata:
            return cls()

        name = metadata.get('full_name') or "Vicentino"
        conference = metadata.get('conference') or "Conferência SSVP"
        initials = "".join(part[0] for part in name.split() if part)[:2].upper()

        return cls(name=name, initials=initials or "V", conference=conference)
