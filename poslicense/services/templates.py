"""
Built-in license templates.

Templates are a fixed catalog of product tiers; issuing a license from one
copies its type and limits.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class LicenseTemplate:
    id: str
    name: str
    description: str
    type: str
    max_users: int
    max_stores: int
    max_activations: int
    duration_months: int
    price: int
    features: List[str] = field(default_factory=list)
    is_active: bool = True

    @property
    def email_domain(self):
        return ''.join(self.name.lower().split()) + '.com'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'description': self.description,
            'type': self.type,
            'maxUsers': self.max_users,
            'maxStores': self.max_stores,
            'maxActivations': self.max_activations,
            'duration': self.duration_months,
            'price': self.price,
            'features': list(self.features),
            'isActive': self.is_active,
        }


TEMPLATES = (
    LicenseTemplate(
        id='1', name='Basic POS',
        description='Essential POS functionality for small businesses',
        type='lifetime', max_users=1, max_stores=1, max_activations=2, duration_months=0, price=299,
        features=['POS', 'Basic Inventory', 'Sales Reports', 'Customer Management'],
    ),
    LicenseTemplate(
        id='2', name='Professional POS',
        description='Advanced POS with inventory management and analytics',
        type='yearly', max_users=5, max_stores=3, max_activations=5, duration_months=12, price=999,
        features=['POS', 'Advanced Inventory', 'Analytics', 'Multi-store', 'Employee Management',
                  'Advanced Reports'],
    ),
    LicenseTemplate(
        id='3', name='Enterprise POS',
        description='Complete enterprise solution with franchise support',
        type='yearly', max_users=50, max_stores=20, max_activations=10, duration_months=12, price=4999,
        features=['POS', 'Enterprise Inventory', 'Advanced Analytics', 'Multi-store', 'Franchise Management',
                  'Advanced Reporting', 'API Access', 'Priority Support'],
    ),
    LicenseTemplate(
        id='4', name='Trial Version',
        description='30-day trial with full functionality',
        type='trial', max_users=2, max_stores=1, max_activations=1, duration_months=1, price=0,
        features=['POS', 'Inventory', 'Reports', 'Analytics'],
    ),
)


def list_templates(include_inactive=False) -> List[LicenseTemplate]:
    return [t for t in TEMPLATES if include_inactive or t.is_active]


def get_template(template_id: str) -> Optional[LicenseTemplate]:
    for template in TEMPLATES:
        if template.id == str(template_id):
            return template
    return None


def template_stats() -> dict:
    prices = [t.price for t in TEMPLATES]
    distribution = {}
    for template in TEMPLATES:
        distribution[template.type] = distribution.get(template.type, 0) + 1
    return {
        'totalTemplates': len(TEMPLATES),
        'activeTemplates': len(list_templates()),
        'typeDistribution': distribution,
        'priceRange': {
            'min': min(prices),
            'max': max(prices),
            'average': sum(prices) / len(prices),
        },
    }
