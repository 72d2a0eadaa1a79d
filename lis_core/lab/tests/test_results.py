import pytest

from lis_core.common.api.exceptions import InvalidStateError, ValidationFailed
from lis_core.lab.services import LabResultService
from lis_core.orders.models import OrderItemStatus, OrderStatus
from lis_core.orders.services import OrderService

pytestmark = pytest.mark.django_db


@pytest.fixture
def order(patient, glucose, hemogram):
    return OrderService.create_order(patient_id=patient.id, test_ids=[glucose.id, hemogram.id])


def test_first_result_moves_order_in_progress(order, hemogram, lab_user):
    item = order.items.get(lab_test=hemogram)
    hb_id = item.template_snapshot["items"][0]["id"]

    result = LabResultService.save_result(
        order_id=order.id,
        order_item_id=item.id,
        payload={hb_id: "14.2"},
        reported_by=lab_user,
    )

    item.refresh_from_db()
    order.refresh_from_db()
    assert result.payload == {hb_id: "14.2"}
    assert item.status == OrderItemStatus.COMPLETADO
    assert order.status == OrderStatus.EN_PROCESO


def test_all_results_complete_the_order(order):
    for item in order.items.all():
        LabResultService.save_result(order_id=order.id, order_item_id=item.id, payload={"v": 1})

    order.refresh_from_db()
    assert order.status == OrderStatus.COMPLETADO


def test_correction_overwrites_and_keeps_delivered(order):
    items = list(order.items.all())
    for item in items:
        LabResultService.save_result(order_id=order.id, order_item_id=item.id, payload={"v": 1})
    OrderService.update_order(order_id=order.id, status=OrderStatus.ENTREGADO)

    result = LabResultService.save_result(
        order_id=order.id, order_item_id=items[0].id, payload={"v": 2}, comment="Corregido"
    )

    order.refresh_from_db()
    assert result.payload == {"v": 2}
    assert result.comment == "Corregido"
    assert order.status == OrderStatus.ENTREGADO


def test_cancelled_order_rejects_results(order):
    OrderService.update_order(order_id=order.id, status=OrderStatus.ANULADO)
    with pytest.raises(InvalidStateError):
        LabResultService.save_result(order_id=order.id, order_item_id=order.items.first().id, payload={})


def test_payload_must_be_an_object(order):
    with pytest.raises(ValidationFailed):
        LabResultService.save_result(order_id=order.id, order_item_id=order.items.first().id, payload=["x"])
