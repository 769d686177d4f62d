from django.conf import settings
from django.http import HttpResponseNotFound

# path prefix -> settings flag that must be on for the prefix to exist
GATED_PREFIXES = (
    ("/admin/", "ENABLE_DJANGO_ADMIN"),
    ("/api/operator/", "ENABLE_OPERATOR"),
)


class OpsOnlyRouteGatingMiddleware:
    """Hide staff surfaces unless enabled and requested on an ops host."""

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        path = request.path or ""
        for prefix, flag in GATED_PREFIXES:
            if not path.startswith(prefix):
                continue
            if not getattr(settings, flag, False) or not self._is_ops_host(request):
                return HttpResponseNotFound()
            break
        return self.get_response(request)

    def _is_ops_host(self, request):
        hostname = (request.get_host() or "").split(":", 1)[0].lower()
        allowed_hosts = {host.lower() for host in getattr(settings, "OPS_ALLOWED_HOSTS", [])}
        return hostname in allowed_hosts
