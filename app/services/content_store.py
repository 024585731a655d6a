from sqlalchemy.orm import Session

from app.models.post import Post
from app.models.sales_rule import SalesRule
from app.services.send_capability import CouponContent, PostContent


def get_post(db: Session, post_id: str) -> Post | None:
    return db.get(Post, post_id)


def get_sales_rule(db: Session, sales_rule_id: str) -> SalesRule | None:
    return db.get(SalesRule, sales_rule_id)


def post_content(post: Post) -> PostContent:
    return PostContent(description=post.description, image=post.image)


def coupon_content(sales_rule: SalesRule, code: str) -> CouponContent:
    return CouponContent(
        code=code,
        sales_rule_name=sales_rule.name,
        description=sales_rule.description,
        image=sales_rule.image,
    )
