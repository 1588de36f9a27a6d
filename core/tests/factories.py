"""Shared fixtures for the settlement test suites."""
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model

from ecommerce.cart.models import Cart, CartItem
from ecommerce.packaging.models import PackagingOption
from ecommerce.product.models import Products, ProductSku

User = get_user_model()


def make_user(username='customer', is_staff=False):
    return User.objects.create_user(
        username=username, email=f'{username}@example.com', password='testpass', is_staff=is_staff
    )


def make_product(title='Ankara Tote', sku='TOTE-RED', price='1000.00', stock=10):
    product = Products.objects.create(title=title)
    product_sku = ProductSku.objects.create(product=product, sku=sku, price=Decimal(price), stock_level=stock)
    return product, product_sku


def make_cart(user, lines=None):
    """``lines`` is a list of (product, sku, quantity, unit_price)."""
    cart = Cart.objects.create(user=user)
    for product, sku, quantity, price in lines or []:
        CartItem.objects.create(
            cart=cart, product=product, sku=sku, quantity=quantity, selling_price=Decimal(str(price))
        )
    return cart


def make_packaging(name='Gift box', price='200.00', is_default=False, is_active=True):
    return PackagingOption.objects.create(
        name=name, price=Decimal(price), is_default=is_default, is_active=is_active
    )


def mock_response(data, ok=True, status_code=200):
    response = mock.Mock()
    response.ok = ok
    response.status_code = status_code
    response.json.return_value = data
    response.raise_for_status.return_value = None
    return response


def daraja_token_response():
    return mock_response({'access_token': 'daraja-token', 'expires_in': '3599'})


def stk_accepted_response(checkout_request_id='ws_CO_191220191020363925'):
    return mock_response({
        'MerchantRequestID': '29115-34620561-1',
        'CheckoutRequestID': checkout_request_id,
        'ResponseCode': '0',
        'ResponseDescription': 'Success. Request accepted for processing',
        'CustomerMessage': 'Success. Request accepted for processing',
    })


def stk_callback(checkout_request_id='ws_CO_191220191020363925', result_code=0, amount=2200):
    callback = {
        'MerchantRequestID': '29115-34620561-1',
        'CheckoutRequestID': checkout_request_id,
        'ResultCode': result_code,
        'ResultDesc': 'The service request is processed successfully.' if result_code == 0
        else 'Request cancelled by user',
    }
    if result_code == 0:
        callback['CallbackMetadata'] = {'Item': [
            {'Name': 'Amount', 'Value': amount},
            {'Name': 'MpesaReceiptNumber', 'Value': 'NLJ7RT61SV'},
            {'Name': 'TransactionDate', 'Value': 20191219102115},
            {'Name': 'PhoneNumber', 'Value': 254722000000},
        ]}
    return {'Body': {'stkCallback': callback}}
