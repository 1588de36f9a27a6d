import logging

from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated, IsAdminUser
from rest_framework.pagination import PageNumberPagination

from core.events import get_event_publisher
from core.exceptions import NotFoundError
from core.response import APIResponse, get_correlation_id
from .checkout import CheckoutService
from .models import Order
from .serializers import (
    OrderCreateSerializer,
    OrderListSerializer,
    OrderSerializer,
    OrderStatusSerializer,
)

logger = logging.getLogger(__name__)


class OrderPagination(PageNumberPagination):
    page_size = 10
    page_size_query_param = 'limit'
    max_page_size = 100


def visible_orders(user):
    orders = Order.objects.all()
    if not user.is_staff:
        orders = orders.filter(customer=user)
    return orders


def get_visible_order(user, pk):
    order = visible_orders(user).select_related(
        'address', 'receipt', 'invoice'
    ).prefetch_related('items').filter(pk=pk).first()
    if not order:
        raise NotFoundError('Order not found')
    return order


class OrderListCreateView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        params = request.query_params
        orders = visible_orders(request.user)
        for param, field in (('status', 'status'), ('paymentStatus', 'payment_status'),
                             ('type', 'fulfillment_type'), ('location', 'location')):
            if params.get(param):
                orders = orders.filter(**{field: params[param]})
        if params.get('q'):
            orders = orders.filter(items__title__icontains=params['q']).distinct()

        paginator = OrderPagination()
        page = paginator.paginate_queryset(orders.order_by('-created_at'), request, view=self)
        return APIResponse.success(
            data={
                'orders': OrderListSerializer(page, many=True).data,
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
        """Create an order (and invoice) from the caller's active cart."""
        serializer = OrderCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = CheckoutService(request.user).create_order(serializer.validated_data)
        invoice = order.invoice_or_none
        return APIResponse.created(
            data={'orderId': order.pk, 'orderNumber': order.order_number,
                  'invoiceId': invoice.pk if invoice else None},
            message='Order created',
            correlation_id=get_correlation_id(request),
        )


class OrderDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        order = get_visible_order(request.user, pk)
        return APIResponse.success(data={'order': OrderSerializer(order).data},
                                   correlation_id=get_correlation_id(request))


class OrderStatusView(APIView):
    permission_classes = [IsAdminUser]

    def patch(self, request, pk):
        serializer = OrderStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = get_visible_order(request.user, pk)
        order.status = serializer.validated_data['status']
        order.save(update_fields=['status', 'updated_at'])
        logger.info(f"Order {order.order_number} status set to {order.status} by user {request.user.pk}")
        get_event_publisher().publish('order.updated', {'orderId': order.pk, 'status': order.status})
        return APIResponse.success(data={'orderId': order.pk, 'status': order.status},
                                   message='Order status updated',
                                   correlation_id=get_correlation_id(request))
