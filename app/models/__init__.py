from app.models.user import User
from app.models.post import Post
from app.models.sales_rule import SalesRule, UserSalesRule
from app.models.coupon import CouponCode
from app.models.queue import PostQueueItem, SalesRuleQueueItem
from app.models.configuration import Configuration
