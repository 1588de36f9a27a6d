from rest_framework.views import APIView
from rest_framework.permissions import IsAuthenticated

from core.exceptions import NotFoundError, PermissionDeniedError
from core.response import APIResponse, get_correlation_id
from ecommerce.order.models import Order
from .serializers import InvoiceCreateSerializer, InvoiceSerializer
from .services import InvoiceService, get_visible_invoice


class InvoiceCreateView(APIView):
    """Issue the invoice for an order that does not have one yet."""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        serializer = InvoiceCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order = Order.objects.filter(pk=serializer.validated_data['order_id']).first()
        if not order:
            raise NotFoundError('Order not found')
        if not request.user.is_staff and order.customer_id != request.user.pk:
            raise PermissionDeniedError('You cannot invoice this order')

        invoice = InvoiceService().create_for_order(order)
        return APIResponse.created(
            data={'invoiceId': invoice.pk, 'invoiceNumber': invoice.invoice_number},
            message='Invoice created',
            correlation_id=get_correlation_id(request),
        )


class InvoiceDetailView(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        invoice = get_visible_invoice(request.user, pk)
        return APIResponse.success(data={'invoice': InvoiceSerializer(invoice).data},
                                   correlation_id=get_correlation_id(request))
