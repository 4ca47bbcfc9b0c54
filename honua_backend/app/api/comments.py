from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.services.notifications import notify
from app.services.profiles import get_current_profile
from models.feed import Comment, CommentLike, Post
from models.profile import Profile

router = APIRouter()


async def _get_comment(db: AsyncSession, comment_id: int) -> Comment:
    comment = (await db.execute(select(Comment).where(Comment.id == comment_id))).scalar_one_or_none()
    if not comment:
        raise HTTPException(status_code=404, detail="Comment not found")
    return comment


async def _likes_count(db: AsyncSession, comment_id: int) -> int:
    return (await db.execute(select(Comment.likes_count).where(Comment.id == comment_id))).scalar_one()


@router.delete("/{comment_id}")
async def delete_comment(comment_id: int, profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    comment = await _get_comment(db, comment_id)
    if comment.user_id != profile.id:
        raise HTTPException(status_code=403, detail="You can only delete your own comments")
    post_id = comment.post_id
    await db.execute(delete(CommentLike).where(CommentLike.comment_id == comment_id))
    # replies stay, detached from the removed parent
    await db.execute(
        update(Comment)
        .where(Comment.parent_id == comment_id)
        .values(parent_id=None)
        .execution_options(synchronize_session=False)
    )
    await db.delete(comment)
    await db.execute(
        update(Post)
        .where(Post.id == post_id, Post.comments_count > 0)
        .values(comments_count=Post.comments_count - 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return {"success": True}


@router.post("/{comment_id}/like")
async def like_comment(comment_id: int, profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    comment = await _get_comment(db, comment_id)
    author_id, post_id, actor_id = comment.user_id, comment.post_id, profile.id
    db.add(CommentLike(comment_id=comment_id, user_id=actor_id))
    try:
        await db.flush()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="Comment already liked")
    await db.execute(
        update(Comment)
        .where(Comment.id == comment_id)
        .values(likes_count=Comment.likes_count + 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    count = await _likes_count(db, comment_id)
    await notify(db, author_id, actor_id, "like", content="liked your comment", post_id=post_id, comment_id=comment_id)
    return {"success": True, "liked": True, "likes_count": count}


@router.delete("/{comment_id}/like")
async def unlike_comment(comment_id: int, profile: Profile = Depends(get_current_profile), db: AsyncSession = Depends(get_db)):
    await _get_comment(db, comment_id)
    result = await db.execute(
        delete(CommentLike).where(CommentLike.comment_id == comment_id, CommentLike.user_id == profile.id)
    )
    if result.rowcount == 0:
        raise HTTPException(status_code=404, detail="Like not found")
    await db.execute(
        update(Comment)
        .where(Comment.id == comment_id, Comment.likes_count > 0)
        .values(likes_count=Comment.likes_count - 1)
        .execution_options(synchronize_session=False)
    )
    await db.commit()
    return {"success": True, "liked": False, "likes_count": await _likes_count(db, comment_id)}
