"""
People Data Labs — person enrichment.
"""
from leadscout.tools.base import ProviderClient, ProviderError, ToolResult

PDL_BASE = 'https://api.peopledatalabs.com/v5'


class PDLClient(ProviderClient):
    name = 'pdl'
    label = 'People Data Labs'

    def enrich_person(self, email=None, first_name=None, last_name=None, company=None, linkedin_url=None) -> ToolResult:
        if not self.configured:
            return self.not_configured({'person': None}, 'PDL_API_KEY')

        params = {
            'email': email,
            'first_name': first_name,
            'last_name': last_name,
            'company': company,
            'profile': linkedin_url,
        }
        params = {k: v for k, v in params.items() if v}
        if not params:
            return ToolResult(data={'person': None}, error='Provide an email, a LinkedIn URL, or a name and company.')

        try:
            response = self._send('GET', f'{PDL_BASE}/person/enrich', params=params, headers={'X-Api-Key': self.api_key})
        except Exception as e:
            return ToolResult(data={'person': None}, error=f"PDL enrich failed: {e}")
        if response.status_code == 404:
            return ToolResult(data={'person': None}, error='Person not found in PDL database.')
        if not response.ok:
            return ToolResult(data={'person': None}, error=f"PDL error: {response.status_code}")

        try:
            data = response.json()
        except ValueError:
            return ToolResult(data={'person': None}, error='PDL returned invalid JSON')
        if isinstance(data.get('data'), dict):
            data = data['data']

        personal_emails = data.get('personal_emails') or []
        phone_numbers = data.get('phone_numbers') or []
        return ToolResult(data={'person': {
            'full_name': data.get('full_name'),
            'first_name': data.get('first_name'),
            'last_name': data.get('last_name'),
            'email': data.get('work_email') or (personal_emails[0] if personal_emails else None),
            'phone': data.get('mobile_phone') or (phone_numbers[0] if phone_numbers else None),
            'title': data.get('job_title'),
            'company': data.get('job_company_name'),
            'company_size': data.get('job_company_size'),
            'company_industry': data.get('job_company_industry'),
            'company_website': data.get('job_company_website'),
            'linkedin': data.get('linkedin_url'),
            'location': data.get('location_name'),
            'skills': data.get('skills') or [],
        }})
