from constants import INTERFACE_ANNOTATION
from service_patcher import (
    ServicePatcher,
    compute_target_ips,
    get_interface_annotation,
    ips_equal,
)
from tests.unit.fakes import FakeCoreV1, make_service


def test_compute_target_ips_replaces_old_address():
    assert compute_target_ips(["10.0.0.5"], "10.0.0.5", "10.0.0.9") == {"10.0.0.9"}


def test_compute_target_ips_preserves_foreign_addresses():
    target = compute_target_ips(["10.0.0.5", "203.0.113.9"], "10.0.0.5",
                                "10.0.0.9")
    assert target == {"10.0.0.9", "203.0.113.9"}


def test_compute_target_ips_first_observation():
    assert compute_target_ips([], "", "10.0.0.5") == {"10.0.0.5"}


def test_ips_equal_ignores_order_and_duplicates():
    assert ips_equal(["10.0.0.9", "10.0.0.5"], {"10.0.0.5", "10.0.0.9"})
    assert ips_equal(["10.0.0.5", "10.0.0.5"], ["10.0.0.5"])
    assert not ips_equal(["10.0.0.5"], ["10.0.0.9"])


def test_get_interface_annotation():
    assert get_interface_annotation(make_service("a", interface="eth0")) == "eth0"
    assert get_interface_annotation(make_service("b")) is None
    assert get_interface_annotation(
        make_service("c", annotations={"other": "x"})) is None


def test_basic_update():
    api = FakeCoreV1([make_service("svc1", ["10.0.0.5"], interface="eth0")])
    patcher = ServicePatcher(api)

    assert patcher.reconcile_interface("eth0", "10.0.0.5", "10.0.0.9") == 1

    assert set(api.get("svc1").spec.external_i_ps) == {"10.0.0.9"}
    assert len(api.replaced) == 1


def test_multi_ip_preservation():
    api = FakeCoreV1(
        [make_service("svc2", ["10.0.0.5", "203.0.113.9"], interface="eth0")])
    patcher = ServicePatcher(api)

    patcher.reconcile_interface("eth0", "10.0.0.5", "10.0.0.9")

    assert set(api.get("svc2").spec.external_i_ps) == {"10.0.0.9", "203.0.113.9"}


def test_reordered_ips_are_not_rewritten():
    api = FakeCoreV1(
        [make_service("svc", ["10.0.0.9", "10.0.0.5"], interface="eth0")])
    patcher = ServicePatcher(api)

    # old address is already gone and the new one is present
    assert patcher.reconcile_interface("eth0", "10.0.0.1", "10.0.0.5") == 0
    assert api.replaced == []


def test_second_pass_is_idempotent():
    api = FakeCoreV1([make_service("svc1", ["10.0.0.5"], interface="eth0")])
    patcher = ServicePatcher(api)

    patcher.reconcile_interface("eth0", "10.0.0.5", "10.0.0.9")
    patcher.reconcile_interface("eth0", "10.0.0.5", "10.0.0.9")

    assert len(api.replaced) == 1


def test_unannotated_and_other_interface_services_untouched():
    api = FakeCoreV1([
        make_service("plain", ["10.0.0.5"]),
        make_service("other", ["10.0.0.5"], interface="eth1"),
        make_service("mine", ["10.0.0.5"], interface="eth0", namespace="apps"),
    ])
    patcher = ServicePatcher(api)

    assert patcher.reconcile_interface("eth0", "10.0.0.5", "10.0.0.9") == 1

    assert [svc.metadata.name for svc in api.replaced] == ["mine"]
    assert api.get("plain").spec.external_i_ps == ["10.0.0.5"]
    assert api.get("other").spec.external_i_ps == ["10.0.0.5"]


def test_service_without_external_ips_gets_new_address():
    api = FakeCoreV1([make_service("svc", None, interface="eth0")])
    patcher = ServicePatcher(api)

    patcher.reconcile_interface("eth0", "", "10.0.0.5")

    assert api.get("svc").spec.external_i_ps == ["10.0.0.5"]


def test_replace_does_not_mutate_listed_object():
    original = make_service("svc1", ["10.0.0.5"], interface="eth0")
    api = FakeCoreV1([original])

    ServicePatcher(api).reconcile_interface("eth0", "10.0.0.5", "10.0.0.9")

    assert original.spec.external_i_ps == ["10.0.0.5"]
    assert api.replaced[0] is not original
    assert api.replaced[0].metadata.annotations[INTERFACE_ANNOTATION] == "eth0"


def test_list_failure_aborts_without_writes():
    api = FakeCoreV1([make_service("svc1", ["10.0.0.5"], interface="eth0")],
                     fail_list=True)

    assert ServicePatcher(api).reconcile_interface("eth0", "10.0.0.5",
                                                   "10.0.0.9") == 0
    assert api.replaced == []


def test_update_failure_does_not_stop_other_services():
    api = FakeCoreV1([
        make_service("broken", ["10.0.0.5"], interface="eth0"),
        make_service("ok", ["10.0.0.5"], interface="eth0"),
    ],
                     fail_update={"broken"})

    assert ServicePatcher(api).reconcile_interface("eth0", "10.0.0.5",
                                                   "10.0.0.9") == 1
    assert api.get("ok").spec.external_i_ps == ["10.0.0.9"]
    assert api.get("broken").spec.external_i_ps == ["10.0.0.5"]


def test_custom_annotation_key():
    api = FakeCoreV1([
        make_service("svc", ["10.0.0.5"], annotations={"example.com/iface": "eth0"})
    ])

    ServicePatcher(api, annotation_key="example.com/iface").reconcile_interface(
        "eth0", "10.0.0.5", "10.0.0.9")

    assert api.get("svc").spec.external_i_ps == ["10.0.0.9"]


def test_request_timeout_passed_to_api():
    api = FakeCoreV1([make_service("svc", ["10.0.0.5"], interface="eth0")])

    ServicePatcher(api, request_timeout=7.5).reconcile_interface(
        "eth0", "10.0.0.5", "10.0.0.9")

    assert api.list_kwargs == [{"_request_timeout": 7.5}]
    assert api.replace_kwargs == [{"_request_timeout": 7.5}]


def test_request_timeout_disabled():
    api = FakeCoreV1([])

    ServicePatcher(api, request_timeout=None).reconcile_interface(
        "eth0", "", "10.0.0.5")

    assert api.list_kwargs == [{}]


class UnreadableSpec:
    """A spec whose field names do not match the client models."""

    @property
    def external_i_ps(self):
        raise AttributeError("external_i_ps")


def test_unreadable_service_does_not_stop_other_services():
    broken = make_service("broken", ["10.0.0.5"], interface="eth0")
    broken.spec = UnreadableSpec()
    api = FakeCoreV1([broken, make_service("ok", ["10.0.0.5"], interface="eth0")])

    assert ServicePatcher(api).reconcile_interface("eth0", "10.0.0.5",
                                                   "10.0.0.9") == 1
    assert [svc.metadata.name for svc in api.replaced] == ["ok"]
    assert api.get("ok").spec.external_i_ps == ["10.0.0.9"]
