from decimal import Decimal, InvalidOperation

from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated, IsAdminUser
from rest_framework.pagination import PageNumberPagination

from core.response import APIResponse, get_correlation_id
from .models import PackagingOption
from .serializers import (
    PackagingOptionSerializer,
    PackagingOptionWriteSerializer,
    PackagingOptionUpdateSerializer,
)
from .services import PackagingService


class PackagingPagination(PageNumberPagination):
    page_size = 10
    page_size_query_param = 'limit'
    max_page_size = 100


SORTABLE_FIELDS = {'name', 'price', 'created_at', 'is_default', 'is_active'}


def _as_bool(value):
    return str(value).lower() == 'true'


class PackagingOptionListView(APIView):
    """List packaging options with filters, or create one (staff only)."""

    def get_permissions(self):
        if self.request.method == 'POST':
            return [IsAdminUser()]
        return [IsAuthenticated()]

    def get(self, request):
        params = request.query_params
        options = PackagingOption.objects.all()

        if params.get('search'):
            options = options.filter(name__icontains=params['search'])
        if params.get('active') is not None:
            options = options.filter(is_active=_as_bool(params['active']))
        if params.get('is_default') is not None:
            options = options.filter(is_default=_as_bool(params['is_default']))
        try:
            if params.get('min_price') is not None:
                options = options.filter(price__gte=Decimal(params['min_price']))
            if params.get('max_price') is not None:
                options = options.filter(price__lte=Decimal(params['max_price']))
        except InvalidOperation:
            pass

        field, _, direction = params.get('sort', 'created_at:desc').partition(':')
        if field not in SORTABLE_FIELDS:
            field = 'created_at'
        options = options.order_by(field if direction.lower() == 'asc' else f'-{field}', 'pk')

        paginator = PackagingPagination()
        page = paginator.paginate_queryset(options, request, view=self)
        return APIResponse.success(
            data={
                'packaging': PackagingOptionSerializer(page, many=True).data,
                'pagination': {
                    'current_page': paginator.page.number,
                    'page_size': paginator.get_page_size(request),
                    'total_items': paginator.page.paginator.count,
                    'total_pages': paginator.page.paginator.num_pages,
                },
            },
            correlation_id=get_correlation_id(request),
        )

    def post(self, request):
        serializer = PackagingOptionWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        option = PackagingService.create(**serializer.validated_data)
        return APIResponse.created(
            data={'packaging': PackagingOptionSerializer(option).data},
            message='Packaging option created',
            correlation_id=get_correlation_id(request),
        )


class PackagingOptionDetailView(APIView):

    def get_permissions(self):
        if self.request.method == 'GET':
            return [IsAuthenticated()]
        return [IsAdminUser()]

    def get(self, request, pk):
        option = PackagingService.get(pk)
        return APIResponse.success(data={'packaging': PackagingOptionSerializer(option).data},
                                   correlation_id=get_correlation_id(request))

    def patch(self, request, pk):
        serializer = PackagingOptionUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        option = PackagingService.update(pk, **serializer.validated_data)
        return APIResponse.success(data={'packaging': PackagingOptionSerializer(option).data},
                                   message='Packaging option updated',
                                   correlation_id=get_correlation_id(request))

    def delete(self, request, pk):
        replacement = PackagingService.delete(pk)
        return APIResponse.success(
            data={'promoted_default': replacement.pk if replacement else None},
            message='Packaging option deleted',
            correlation_id=get_correlation_id(request),
        )


class PackagingOptionSetDefaultView(APIView):
    permission_classes = [IsAdminUser]

    def patch(self, request, pk):
        option = PackagingService.set_default(pk)
        return APIResponse.success(data={'packaging': PackagingOptionSerializer(option).data},
                                   message='Default packaging updated',
                                   correlation_id=get_correlation_id(request))


class ActivePackagingView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        options = PackagingService.active_options()
        return APIResponse.success(data={'packaging': PackagingOptionSerializer(options, many=True).data},
                                   correlation_id=get_correlation_id(request))


class DefaultPackagingView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        correlation_id = get_correlation_id(request)
        option = PackagingService.default_option()
        if not option:
            return APIResponse.not_found(message='No default packaging configured', correlation_id=correlation_id)
        return APIResponse.success(data={'packaging': PackagingOptionSerializer(option).data},
                                   correlation_id=correlation_id)
