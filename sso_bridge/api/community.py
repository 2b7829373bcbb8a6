from typing import Annotated, Optional

from fastapi import APIRouter, HTTPException, Query, status

from sso_bridge.api.deps import SSOConfigDep
from sso_bridge.schemas.community import CommunityCategory, CommunityLinkResponse
from sso_bridge.services.link_service import DEFAULT_CATEGORIES, build_category_url, build_topic_url

router = APIRouter(prefix="/community", tags=["Community"])


@router.get("/links", response_model=CommunityLinkResponse)
async def community_link(
    config: SSOConfigDep,
    category: Annotated[Optional[str], Query(max_length=100)] = None,
    topic: Annotated[Optional[str], Query(max_length=50)] = None,
    sso: bool = True,
) -> CommunityLinkResponse:
    if bool(category) == bool(topic):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Provide exactly one of 'category' or 'topic'",
        )

    if category:
        url = build_category_url(config.forum_base_url, category, enable_sso=sso)
    else:
        url = build_topic_url(config.forum_base_url, topic, enable_sso=sso)
    return CommunityLinkResponse(url=url, sso=sso)


@router.get("/categories", response_model=list[CommunityCategory])
async def community_categories(config: SSOConfigDep, sso: bool = True) -> list[CommunityCategory]:
    return [
        CommunityCategory(
            id=category.id,
            name=category.name,
            slug=category.slug,
            description=category.description,
            url=build_category_url(config.forum_base_url, category.slug, enable_sso=sso),
        )
        for category in DEFAULT_CATEGORIES
    ]
