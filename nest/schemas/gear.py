from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class GearBase(BaseModel):
    name: str = Field(min_length=1)
    category: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    condition: Optional[str] = None
    quantity: int = Field(default=1, ge=0)
    available_quantity: Optional[int] = Field(default=None, ge=0)
    serial_number: Optional[str] = None


class GearCreate(GearBase):
    pass


class GearUpdate(BaseModel):
    name: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    condition: Optional[str] = None
    quantity: Optional[int] = Field(default=None, ge=0)
    available_quantity: Optional[int] = Field(default=None, ge=0)
    serial_number: Optional[str] = None
    due_date: Optional[str] = None


class GearOut(BaseModel):
    id: int
    name: str
    category: Optional[str]
    description: Optional[str]
    status: str
    condition: Optional[str]
    quantity: int
    available_quantity: int
    serial_number: Optional[str]
    checked_out_to: Optional[int]
    holder_name: Optional[str] = None
    current_request_id: Optional[int]
    last_checkout_date: Optional[str]
    due_date: Optional[str]
    created_at: str
    updated_at: Optional[str]

    model_config = {"from_attributes": True}


class GearBatchIds(BaseModel):
    ids: list[int] = Field(min_length=1)


class GearBatchStatus(GearBatchIds):
    status: str = Field(min_length=1)


class PopularGearItem(BaseModel):
    gear_id: int
    name: str
    category: Optional[str]
    request_count: int
    total_quantity: int


class CategoryUtilization(BaseModel):
    category: str
    total_units: int
    available_units: int
    checked_out_units: int
    utilization_rate: int


class ScanLookup(BaseModel):
    code: str = Field(min_length=1)


class MaintenanceCreate(BaseModel):
    status: str = Field(min_length=1)
    maintenance_type: str = "Maintenance"
    description: Optional[str] = None
    performed_at: Optional[str] = None


class MaintenanceOut(BaseModel):
    id: int
    gear_id: int
    status: str
    maintenance_type: str
    description: Optional[str]
    performed_by: Optional[int]
    performed_at: str
    created_at: str

    model_config = {"from_attributes": True}


class CsvImportResult(BaseModel):
    inserted: int
    updated: int
    total: int
