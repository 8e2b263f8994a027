from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, StrictStr, ValidationError

from chatstore.errors import MalformedRecord
from chatstore.models.user import DirectoryEntryDocument, UserDocument


class UserBase(BaseModel):

    uid: str = Field(min_length=1)
    email: EmailStr


class UserRecord(UserBase):

    first_name: str
    last_name: str

    @property
    def name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    @property
    def profile_picture_file_name(self) -> str:
        return f"{self.uid}_profile_pic.png"

    def to_document(self) -> UserDocument:
        return {"firstName": self.first_name, "lastName": self.last_name, "email": self.email}

    def to_directory_entry(self) -> "DirectoryEntry":
        return DirectoryEntry(uid=self.uid, name=self.name, email=self.email)

    @classmethod
    def from_document(cls, uid: str, value: Any) -> "UserRecord":
        if not isinstance(value, dict):
            raise MalformedRecord(f"profile {uid} is not a mapping")
        try:
            return cls(
                uid=uid,
                first_name=value["firstName"],
                last_name=value["lastName"],
                email=value["email"],
            )
        except (KeyError, ValidationError) as exc:
            raise MalformedRecord(f"profile {uid}: {exc}") from exc


class DirectoryEntry(BaseModel):

    model_config = ConfigDict(frozen=True)

    uid: StrictStr
    name: StrictStr
    email: StrictStr

    def to_document(self) -> DirectoryEntryDocument:
        return {"uid": self.uid, "name": self.name, "email": self.email}

    @classmethod
    def from_document(cls, value: Any) -> "DirectoryEntry":
        if not isinstance(value, dict):
            raise MalformedRecord("directory entry is not a mapping")
        try:
            return cls.model_validate(value)
        except ValidationError as exc:
            raise MalformedRecord(f"directory entry: {exc}") from exc


class Principal(BaseModel):

    uid: str
    email: str
    display_name: Optional[str] = None


class Identity(BaseModel):

    model_config = ConfigDict(frozen=True)

    uid: str
    email: str
    display_name: str
