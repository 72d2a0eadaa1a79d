# lis_core/conftest.py
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.contrib.auth.models import Group
from rest_framework.test import APIClient

from lis_core.branches.models import Branch
from lis_core.catalog.models import (
    LabTest,
    LabTestReferredLabOption,
    Profile,
    ProfileItem,
    ReferenceRange,
    ReferredLab,
    ResultTemplate,
    Section,
    TemplateParameter,
    ValueType,
)
from lis_core.common.permissions import (
    ALL_ROLES,
    ROLE_ADMISSION,
    ROLE_ADMISSION_SUPERVISOR,
    ROLE_CASHIER,
    ROLE_LAB,
)
from lis_core.patients.models import Patient


# ----------------------------
# Users / clients
# ----------------------------
@pytest.fixture
def make_user(db):
    def _make(username: str, *roles: str, is_superuser: bool = False):
        for name in ALL_ROLES:
            Group.objects.get_or_create(name=name)

        User = get_user_model()
        if is_superuser:
            return User.objects.create_superuser(username=username, password="pass123", email=f"{username}@lab.test")

        user = User.objects.create_user(username=username, password="pass123")
        for role in roles:
            user.groups.add(Group.objects.get(name=role))
        return user

    return _make


@pytest.fixture
def admin_user(make_user):
    return make_user("admin", is_superuser=True)


@pytest.fixture
def admission_user(make_user):
    return make_user("desk", ROLE_ADMISSION)


@pytest.fixture
def supervisor_user(make_user):
    return make_user("desk_lead", ROLE_ADMISSION_SUPERVISOR)


@pytest.fixture
def lab_user(make_user):
    return make_user("lab", ROLE_LAB)


@pytest.fixture
def cashier_user(make_user):
    return make_user("cashier", ROLE_CASHIER)


@pytest.fixture
def readonly_user(make_user):
    return make_user("viewer")


@pytest.fixture
def client_for():
    def _client(user):
        c = APIClient()
        c.force_authenticate(user=user)
        return c

    return _client


@pytest.fixture
def api_client(client_for, admin_user):
    return client_for(admin_user)


# ----------------------------
# Catalog
# ----------------------------
@pytest.fixture
def branch(db):
    return Branch.objects.create(code="central", name="Sede Central")


@pytest.fixture
def section(db):
    return Section.objects.create(code="bioquimica", name="Bioquímica", order=1)


@pytest.fixture
def referred_lab(db):
    return ReferredLab.objects.create(name="Lab Referencia Norte")


@pytest.fixture
def other_lab(db):
    return ReferredLab.objects.create(name="Lab Referencia Sur")


@pytest.fixture
def make_test(db, section):
    def _make(code: str, name: str, price: str, **extra) -> LabTest:
        return LabTest.objects.create(code=code, name=name, section=section, price=Decimal(price), **extra)

    return _make


@pytest.fixture
def glucose(make_test):
    # Convention price differs from the public price
    return make_test("GLU", "Glucosa", "10.00", price_to_admission=Decimal("8.00"))


@pytest.fixture
def hemogram(make_test):
    test = make_test("HEM", "Hemograma completo", "25.00")
    template = ResultTemplate.objects.create(lab_test=test, title="Hemograma", notes="Muestra en EDTA")
    hb = TemplateParameter.objects.create(
        template=template,
        group_name="Serie roja",
        param_name="Hemoglobina",
        unit="g/dL",
        ref_range_text="12 - 16",
        ref_min=Decimal("12"),
        ref_max=Decimal("16"),
        value_type=ValueType.DECIMAL,
        order=1,
    )
    ReferenceRange.objects.create(parameter=hb, sex="M", ref_range_text="13 - 17", ref_min=13, ref_max=17, order=1)
    TemplateParameter.objects.create(
        template=template,
        group_name="Serie blanca",
        param_name="Leucocitos",
        unit="10^3/uL",
        value_type=ValueType.NUMBER,
        order=2,
    )
    return test


@pytest.fixture
def thyroid(make_test, referred_lab, other_lab):
    """Referred test: default lab Norte (cost 40), alternative Sur (cost 35)."""
    test = make_test(
        "TSH",
        "Hormona tiroestimulante",
        "80.00",
        is_referred=True,
        referred_lab=referred_lab,
        external_lab_cost=Decimal("40.00"),
    )
    LabTestReferredLabOption.objects.create(lab_test=test, referred_lab=other_lab, external_lab_cost=Decimal("35.00"))
    return test


@pytest.fixture
def lipid_profile(make_test):
    """Bundle of three 20.00 tests sold for 50.00."""
    profile = Profile.objects.create(name="Perfil lipídico", package_price=Decimal("50.00"))
    for order, (code, name) in enumerate([("COL", "Colesterol"), ("HDL", "HDL"), ("TRI", "Triglicéridos")]):
        ProfileItem.objects.create(profile=profile, lab_test=make_test(code, name, "20.00"), order=order)
    return profile


@pytest.fixture
def patient(db):
    return Patient.objects.create(
        code="PAC-0001",
        dni="45678912",
        first_name="ROSA",
        last_name="QUISPE",
    )


@pytest.fixture
def anon_client():
    return APIClient()
