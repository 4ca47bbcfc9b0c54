from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.profiles import get_current_profile
from models.bookmarks import DEFAULT_COLLECTION_COLOR, Bookmark, Collection
from models.profile import Profile
from schemas.bookmarks import CollectionCreate, CollectionListResponse, CollectionResponse, CollectionUpdate

router = APIRouter()


def _to_response(collection: Collection, bookmark_count: int = 0) -> CollectionResponse:
    return CollectionResponse(
        id=collection.id,
        name=collection.name,
        description=collection.description,
        color=collection.color,
        bookmark_count=bookmark_count,
        created_at=collection.created_at,
    )


async def _owned_collection(db: AsyncSession, collection_id: int, user_id: str) -> Collection:
    row = await db.execute(
        select(Collection).where(Collection.id == collection_id, Collection.user_id == user_id)
    )
    collection = row.scalar_one_or_none()
    if not collection:
        raise HTTPException(status_code=404, detail="Collection not found")
    return collection


async def _detach_bookmarks(db: AsyncSession, collection_ids) -> None:
    # bookmarks outlive their collection
    await db.execute(
        update(Bookmark)
        .where(Bookmark.collection_id.in_(collection_ids))
        .values(collection_id=None)
        .execution_options(synchronize_session=False)
    )


@router.get("", response_model=CollectionListResponse)
async def list_collections(profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    rows = await db.execute(
        select(Collection, func.count(Bookmark.id))
        .outerjoin(Bookmark, Bookmark.collection_id == Collection.id)
        .where(Collection.user_id == profile.id)
        .group_by(Collection.id)
        .order_by(Collection.created_at.desc(), Collection.id.desc())
    )
    return CollectionListResponse(collections=[_to_response(c, count) for c, count in rows])


@router.post("", response_model=CollectionResponse, status_code=201)
async def create_collection(
    payload: CollectionCreate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    collection = Collection(
        user_id=profile.id,
        name=payload.name,
        description=payload.description,
        color=payload.color or DEFAULT_COLLECTION_COLOR,
    )
    db.add(collection)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="A collection with this name already exists")
    return _to_response(collection)


@router.delete("")
async def clear_collections(profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    ids = select(Collection.id).where(Collection.user_id == profile.id)
    await _detach_bookmarks(db, ids)
    result = await db.execute(delete(Collection).where(Collection.user_id == profile.id))
    await db.commit()
    return {"success": True, "deleted": result.rowcount}


@router.put("/{collection_id}", response_model=CollectionResponse)
async def update_collection(
    collection_id: int,
    payload: CollectionUpdate,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    collection = await _owned_collection(db, collection_id, profile.id)
    if payload.name is not None:
        name = payload.name.strip()
        if not name:
            raise HTTPException(status_code=400, detail="Collection name is required")
        collection.name = name
    if payload.description is not None:
        collection.description = payload.description
    if payload.color is not None:
        collection.color = payload.color
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="A collection with this name already exists")
    count = (await db.execute(
        select(func.count(Bookmark.id)).where(Bookmark.collection_id == collection_id)
    )).scalar_one()
    return _to_response(collection, count)


@router.delete("/{collection_id}")
async def delete_collection(
    collection_id: int,
    profile: Profile = Depends(get_current_profile),
    db: AsyncSession = Depends(get_db),
):
    collection = await _owned_collection(db, collection_id, profile.id)
    await _detach_bookmarks(db, [collection.id])
    await db.delete(collection)
    await db.commit()
    return {"success": True}
