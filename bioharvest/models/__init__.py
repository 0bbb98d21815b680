# bioharvest/models/__init__.py
from bioharvest.models.user_models import User
from bioharvest.models.activity_models import UserActivity
from bioharvest.models.promo_models import PromoCode, PromoRedemption, DiscountType
from bioharvest.models.course_models import Course, CourseSection
from bioharvest.models.enrollment_models import Enrollment, SectionCompletion
from bioharvest.models.order_models import Order
