"""
ZeroBounce — email deliverability check.
"""
from leadscout.tools.base import ProviderClient, ProviderError, ToolResult

ZB_BASE = 'https://api.zerobounce.net/v2'


class ZeroBounceClient(ProviderClient):
    name = 'zerobounce'
    label = 'ZeroBounce'

    def verify_email(self, email) -> ToolResult:
        empty = {'status': 'unknown', 'sub_status': '', 'valid': False}
        if not self.configured:
            return self.not_configured(empty, 'ZEROBOUNCE_API_KEY')
        try:
            response = self.request('GET', f'{ZB_BASE}/validate', params={'api_key': self.api_key, 'email': email})
            data = response.json()
        except (ProviderError, ValueError) as e:
            return ToolResult(data=empty, error=f"ZeroBounce verify failed: {e}")
        status = data.get('status') or 'unknown'
        return ToolResult(data={'status': status, 'sub_status': data.get('sub_status') or '', 'valid': status == 'valid'})
