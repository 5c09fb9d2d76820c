from django_filters import rest_framework as filters
from rest_framework import pagination, permissions, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from .models import ImportRun, Product
from .serializers import ImportRunSerializer, ProductSerializer
from .views_reset import CatalogResetView


class ProductFilterSet(filters.FilterSet):
    sku = filters.CharFilter(field_name="sku", lookup_expr="icontains")
    name = filters.CharFilter(field_name="name", lookup_expr="icontains")
    upc = filters.CharFilter(field_name="upc", lookup_expr="exact")

    class Meta:
        model = Product
        fields = ["sku", "name", "upc", "origin", "active"]


class ProductPagination(pagination.PageNumberPagination):
    page_size = 50
    page_size_query_param = "page_size"
    max_page_size = 200


class ProductViewSet(viewsets.ModelViewSet):
    queryset = Product.objects.all().prefetch_related("pos_links").order_by("-created_at")
    serializer_class = ProductSerializer
    pagination_class = ProductPagination
    filter_backends = [filters.DjangoFilterBackend]
    filterset_class = ProductFilterSet

    def reset_catalog(self, request, *args, **kwargs):
        view = CatalogResetView()
        view.request = request
        view.args = args
        view.kwargs = kwargs
        return view.delete(request, *args, **kwargs)


class ImportRunFilterSet(filters.FilterSet):
    class Meta:
        model = ImportRun
        fields = ["integration", "status"]


class ImportRunViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = ImportRun.objects.all().order_by("-started_at")
    serializer_class = ImportRunSerializer
    pagination_class = ProductPagination
    permission_classes = [permissions.AllowAny]
    filter_backends = [filters.DjangoFilterBackend]
    filterset_class = ImportRunFilterSet

    @action(detail=True, methods=["get"])
    def progress(self, request, pk=None):
        run = self.get_object()
        return Response({"run_id": str(run.pk), "progress": run.progress_payload()})
