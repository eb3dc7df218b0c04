"""School request schemas."""

from typing import Optional

from pydantic import BaseModel


class SchoolCreate(BaseModel):
    name: str
    address: Optional[str] = None
    taluka: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None
    phone_no: Optional[str] = None
    email: Optional[str] = None
    general_register_no: Optional[str] = None
    school_recognition_no: Optional[str] = None
    udise_no: Optional[str] = None
    affiliation_no: Optional[str] = None
    board: Optional[str] = "Maharashtra State"
    medium: Optional[str] = "Marathi"


class SchoolUpdate(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    taluka: Optional[str] = None
    district: Optional[str] = None
    state: Optional[str] = None
    phone_no: Optional[str] = None
    email: Optional[str] = None
    general_register_no: Optional[str] = None
    school_recognition_no: Optional[str] = None
    udise_no: Optional[str] = None
    affiliation_no: Optional[str] = None
    board: Optional[str] = None
    medium: Optional[str] = None
    comment: Optional[str] = None
