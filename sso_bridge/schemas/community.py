from pydantic import BaseModel


class CommunityCategory(BaseModel):
    id: str
    name: str
    slug: str
    description: str
    url: str


class CommunityLinkResponse(BaseModel):
    url: str
    sso: bool
