from decimal import Decimal

import pytest
from django.utils import timezone

from lis_core.admissions.conversion import convert_admission
from lis_core.admissions.models import AdmissionStatus
from lis_core.admissions.selectors import get_admission
from lis_core.admissions.services import AdmissionService
from lis_core.alerts.models import Notification, NotificationType
from lis_core.catalog.models import ResultTemplate, TemplateParameter
from lis_core.common.api.exceptions import AlreadyProcessedError, InvalidStateError, ReferenceUnavailableError
from lis_core.orders.models import LabOrder, OrderSource, OrderStatus
from lis_core.orders.services import OrderService

pytestmark = pytest.mark.django_db


def _pending(patient, *tests):
    return AdmissionService.create(
        patient_id=patient.id,
        test_ids=[t.id for t in tests],
        auto_convert=False,
    ).admission


def test_conversion_copies_items_and_totals(patient, make_test):
    with_template = make_test("PCR", "Proteína C reactiva", "45.00")
    template = ResultTemplate.objects.create(lab_test=with_template, title="PCR")
    TemplateParameter.objects.create(template=template, param_name="PCR", unit="mg/L", order=1)
    plain = make_test("VSG", "Velocidad de sedimentación", "30.00", price_to_admission=Decimal("20.00"))

    admission = _pending(patient, with_template, plain)
    assert admission.total_price == Decimal("75.00")

    result = convert_admission(admission_request_id=admission.id)

    order = LabOrder.objects.get(id=result.order_id)
    assert order.order_code == result.order_code
    assert order.order_source == OrderSource.ADMISION
    assert order.status == OrderStatus.PENDIENTE
    assert order.total_price == Decimal("75.00")
    assert order.admission_request_id == admission.id

    pcr, vsg = order.items.order_by("position")
    assert pcr.template_snapshot["title"] == "PCR"
    assert vsg.template_snapshot is None
    assert pcr.price_convention_snapshot == Decimal("45.00")
    assert vsg.price_convention_snapshot == Decimal("20.00")

    admission = get_admission(admission_id=admission.id)
    assert admission.status == AdmissionStatus.CONVERTIDA
    assert admission.converted_order_id == order.id
    assert admission.converted_at is not None


def test_adjusted_prices_survive_conversion(patient, make_test):
    echo = make_test("ECO", "Ecografía abdominal", "50.00")
    admission = AdmissionService.create(
        patient_id=patient.id,
        test_ids=[echo.id],
        adjustments=[{"lab_test_id": echo.id, "price_applied": "35.00"}],
        can_adjust_price=True,
        auto_convert=False,
    ).admission

    result = convert_admission(admission_request_id=admission.id)
    assert LabOrder.objects.get(id=result.order_id).total_price == Decimal("35.00")


def test_second_conversion_is_already_processed(patient, glucose):
    admission = _pending(patient, glucose)
    convert_admission(admission_request_id=admission.id)

    with pytest.raises(AlreadyProcessedError):
        convert_admission(admission_request_id=admission.id)
    assert LabOrder.objects.count() == 1


def test_losing_the_race_on_the_order_link_is_already_processed(patient, glucose):
    """A concurrent winner already inserted the order but this call still saw PENDIENTE."""
    admission = _pending(patient, glucose)
    LabOrder.objects.create(order_code="ORD-RACE-0001", patient=patient, admission_request=admission)

    with pytest.raises(AlreadyProcessedError):
        convert_admission(admission_request_id=admission.id)
    assert LabOrder.objects.count() == 1


def test_cancelled_request_cannot_be_converted(patient, glucose):
    admission = _pending(patient, glucose)
    AdmissionService.cancel(admission_id=admission.id)

    with pytest.raises(InvalidStateError):
        convert_admission(admission_request_id=admission.id)


def test_soft_deleted_test_blocks_conversion(patient, glucose, hemogram):
    admission = _pending(patient, glucose, hemogram)
    glucose.deleted_at = timezone.now()
    glucose.save()

    with pytest.raises(ReferenceUnavailableError) as exc:
        convert_admission(admission_request_id=admission.id)

    assert "Glucosa" in str(exc.value.detail)
    assert exc.value.details["lab_tests"][0]["code"] == "GLU"
    assert get_admission(admission_id=admission.id).status == AdmissionStatus.PENDIENTE
    assert not LabOrder.objects.exists()


def test_conversion_notifies_lab_after_commit(patient, glucose, django_capture_on_commit_callbacks):
    admission = _pending(patient, glucose)

    with django_capture_on_commit_callbacks(execute=True):
        result = convert_admission(admission_request_id=admission.id)

    note = Notification.objects.get()
    assert note.type == NotificationType.ADMISSION_CONVERTED
    assert str(note.related_order_id) == str(result.order_id)
    assert result.order_code in note.message


def test_notification_failure_does_not_undo_conversion(monkeypatch, patient, glucose, django_capture_on_commit_callbacks):
    def _fail(**kwargs):
        raise RuntimeError("notification store down")

    monkeypatch.setattr("lis_core.alerts.subscribers.NotificationService.notify_admission_converted", _fail)
    admission = _pending(patient, glucose)

    with django_capture_on_commit_callbacks(execute=True):
        result = convert_admission(admission_request_id=admission.id)

    assert LabOrder.objects.filter(id=result.order_id).exists()
    assert not Notification.objects.exists()


def test_deleting_converted_order_reopens_request(patient, glucose):
    admission = _pending(patient, glucose)
    first = convert_admission(admission_request_id=admission.id)

    OrderService.delete_order(order_id=first.order_id)

    admission = get_admission(admission_id=admission.id)
    assert admission.status == AdmissionStatus.PENDIENTE
    assert admission.converted_order_id is None

    second = convert_admission(admission_request_id=admission.id)
    assert second.order_id != first.order_id
