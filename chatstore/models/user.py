from typing import TypedDict


class UserDocument(TypedDict, total=False):
    # stored at /{uid}; the conversations child lives next to these keys
    firstName: str
    lastName: str
    email: str


class DirectoryEntryDocument(TypedDict):
    # one element of the flat /users list
    uid: str
    name: str
    email: str
