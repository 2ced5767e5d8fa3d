"""Build URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.builds.views import BuildViewSet

router = DefaultRouter(trailing_slash=False)
router.register("builds", BuildViewSet, basename="build")

urlpatterns = router.urls
