import logging
from datetime import datetime, timedelta

from sqlalchemy import select

from errors import ProviderUnavailable
from models import PaymentProvider, ProviderToken
from services.provider_base import ProviderClient, with_retry

logger = logging.getLogger(__name__)

SUCCESS_CODE = '0000'
TOKEN_LIFETIME_MINUTES = 55
TOKEN_MIN_REMAINING_MINUTES = 5

# Provider status vocabulary -> normalized status
QR_STATUS_MAP = {
    'PENDIENTE': 'pending',
    'PAGADO': 'completed',
    'INHABILITADO': 'disabled',
    'ERROR': 'failed',
    'EXPIRADO': 'expired',
}


class QrProviderService(ProviderClient):
    """Bank QR provider: token handling, QR generation, status checks, disabling."""

    def __init__(self, session, base_url, api_key='', service_key='', username='', password='',
                 timeout_seconds=12.0, max_retries=2, transport=None):
        super().__init__(base_url, timeout_seconds=timeout_seconds, max_retries=max_retries, transport=transport)
        self.session = session
        self.api_key = api_key
        self.service_key = service_key
        self.username = username
        self.password = password

    @classmethod
    def from_config(cls, config, session, transport=None):
        return cls(
            session,
            config['QR_API_URL'],
            api_key=config.get('QR_API_KEY', ''),
            service_key=config.get('QR_API_KEY_SERVICE', ''),
            username=config.get('QR_USERNAME', ''),
            password=config.get('QR_PASSWORD', ''),
            timeout_seconds=config.get('PROVIDER_TIMEOUT_SECONDS', 12.0),
            max_retries=config.get('PROVIDER_MAX_RETRIES', 2),
            transport=transport
        )

    @property
    def configured(self):
        return bool(self.base_url and self.service_key and self.username)

    # --- Token ---
    def _cached_token(self):
        stmt = (
            select(ProviderToken)
            .where(ProviderToken.provider == PaymentProvider.QR)
            .order_by(ProviderToken.expires_at.desc())
            .limit(1)
        )
        row = self.session.execute(stmt).scalar_one_or_none()
        if row is not None and row.valid_for(TOKEN_MIN_REMAINING_MINUTES):
            return row.token
        return None

    async def get_token(self):
        """Token reused from storage while it has 5+ minutes left, so all workers share it."""
        token = self._cached_token()
        if token:
            return token
        return await self.request_new_token()

    @with_retry(max_retries=2, delay=0.5)
    async def request_new_token(self):
        response = await self._send(
            'POST', '/autenticacion/v1/generarToken',
            json={'username': self.username, 'password': self.password},
            headers={'apikey': self.api_key}
        )
        data = self._json(response)

        if response.status_code >= 400:
            logger.error(f"QR token request failed: {response.status_code} {data.get('mensaje')}")
            raise ProviderUnavailable(f"Failed to get token: {response.status_code}")

        token = (data.get('objeto') or {}).get('token')
        if data.get('codigo') == 'NOK' or not token:
            logger.error(f"QR provider returned token error: {data.get('mensaje')}")
            raise ProviderUnavailable(data.get('mensaje') or 'No token received')

        self.session.add(ProviderToken(
            provider=PaymentProvider.QR,
            token=token,
            expires_at=datetime.utcnow() + timedelta(minutes=TOKEN_LIFETIME_MINUTES)
        ))
        self.session.commit()
        return token

    # --- Authorized calls ---
    async def _authorized_post(self, path, payload):
        token = await self.get_token()
        response = await self._post_with_token(path, payload, token)

        if response.status_code == 401:
            # Token revoked or expired early: refresh once
            token = await self.request_new_token()
            response = await self._post_with_token(path, payload, token)

        if response.status_code >= 400:
            logger.warning(f"QR provider error on {path}: {response.status_code}")
            raise ProviderUnavailable(f"API Error: {response.status_code}")
        return self._json(response)

    @with_retry(max_retries=2, delay=0.5)
    async def _post_with_token(self, path, payload, token):
        return await self._send(
            'POST', path,
            json=payload,
            headers={
                'apikeyServicio': self.service_key,
                'Authorization': f'Bearer {token}'
            }
        )

    async def generate_qr(self, alias, amount, currency, description, expiration_date):
        """Issues a single-use QR; ``expiration_date`` is dd/MM/yyyy."""
        data = await self._authorized_post('/api/v1/generaQr', {
            'alias': alias,
            'callback': '000',
            'detalleGlosa': description,
            'monto': f"{float(amount):.1f}",
            'moneda': currency,
            'fechaVencimiento': expiration_date,
            'tipoSolicitud': 'API'
        })

        if data.get('codigo') != SUCCESS_CODE:
            logger.error(f"QR generation failed for {alias}: {data.get('mensaje')}")
            raise ProviderUnavailable(data.get('mensaje') or 'Error generating QR')

        objeto = data.get('objeto') or {}
        return {
            'qrImage': objeto.get('imagenQr'),
            'qrId': objeto.get('idQr'),
            'alias': alias,
            'expiresAt': objeto.get('fechaVencimiento')
        }

    async def check_status(self, alias):
        """Raw provider status for an alias (``status`` is still in provider vocabulary)."""
        data = await self._authorized_post('/api/v1/estadoTransaccion', {'alias': alias})

        if data.get('codigo') != SUCCESS_CODE:
            raise ProviderUnavailable(data.get('mensaje') or 'Error checking QR status')

        objeto = data.get('objeto') or {}
        return {
            'status': objeto.get('estadoActual'),
            'processedAt': objeto.get('fechaProcesamiento'),
            'payerName': objeto.get('nombreCliente'),
            'payerAccount': objeto.get('cuentaCliente'),
            'payerDocument': objeto.get('documentoCliente'),
            'transactionId': objeto.get('numeroOrdenOriginante')
        }

    async def disable_qr(self, alias):
        try:
            data = await self._authorized_post('/api/v1/inhabilitarPago', {'alias': alias})
        except ProviderUnavailable as e:
            logger.warning(f"Failed to disable QR {alias}: {e}")
            return False
        return data.get('codigo') == SUCCESS_CODE
