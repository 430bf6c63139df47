from faceplate_detect.core.promote import (
    absorb_concentric_duplicates,
    promote,
    promote_concentric_knobs,
    promote_lit_buttons,
)
from faceplate_detect.models import ControlKind, Rect


# ================================================================
# Lit Button
# ================================================================


# Test Case 1: 버튼 안의 LED → Lit Button
def test_button_with_inner_light_becomes_lit_button(make_draft):
    button = make_draft(ControlKind.BUTTON, center=(120, 80), radius=None, rect=Rect(95, 55, 50, 50),
                        label="Button", confidence=0.58)
    light = make_draft(ControlKind.LIGHT, center=(120, 80), radius=10.0, label="Light", confidence=0.55)

    result = promote_lit_buttons([button, light])

    assert len(result) == 1
    lit = result[0]
    assert lit.kind is ControlKind.LIT_BUTTON
    assert lit.label == "Lit Button"
    assert lit.confidence == 0.70
    assert lit.rect == button.rect


def test_light_outside_inset_is_not_absorbed(make_draft):
    # inset 18% → (9, 9, 32, 32); (5, 25)는 바깥
    button = make_draft(ControlKind.BUTTON, center=(25, 25), radius=None, rect=Rect(0, 0, 50, 50))
    light = make_draft(ControlKind.LIGHT, center=(5, 25), radius=4.0)

    result = promote_lit_buttons([button, light])

    assert [d.kind for d in result] == [ControlKind.BUTTON, ControlKind.LIGHT]


def test_light_is_absorbed_only_once(make_draft):
    b1 = make_draft(ControlKind.BUTTON, center=(50, 50), radius=None, rect=Rect(25, 25, 50, 50))
    b2 = make_draft(ControlKind.BUTTON, center=(52, 50), radius=None, rect=Rect(27, 25, 50, 50))
    light = make_draft(ControlKind.LIGHT, center=(50, 50), radius=8.0)

    result = promote_lit_buttons([b1, b2, light])

    assert [d.kind for d in result] == [ControlKind.LIT_BUTTON, ControlKind.BUTTON]


def test_lit_button_keeps_higher_confidence(make_draft):
    button = make_draft(ControlKind.BUTTON, center=(50, 50), radius=None, rect=Rect(25, 25, 50, 50),
                        confidence=0.9)
    light = make_draft(ControlKind.LIGHT, center=(50, 50), radius=8.0)
    assert promote_lit_buttons([button, light])[0].confidence == 0.9


def test_button_absorbs_every_inner_light(make_draft):
    # 같은 LED를 두 pass가 찾은 경우
    button = make_draft(ControlKind.BUTTON, center=(50, 50), radius=None, rect=Rect(25, 25, 50, 50))
    blob_light = make_draft(ControlKind.LIGHT, center=(50, 50), radius=10.0)
    hough_light = make_draft(ControlKind.LIGHT, center=(51, 49), radius=9.0)

    result = promote_lit_buttons([button, blob_light, hough_light])

    assert [d.kind for d in result] == [ControlKind.LIT_BUTTON]


def test_promote_lit_buttons_empty():
    assert promote_lit_buttons([]) == []


# ================================================================
# Concentric Knob
# ================================================================


# Test Case 2: 동심원 → Concentric
def test_concentric_pair_is_promoted(make_draft):
    outer = make_draft(ControlKind.KNOB, center=(200, 200), radius=30.0, label="Knob", confidence=0.62)
    inner = make_draft(ControlKind.KNOB, center=(201, 200), radius=15.0, label="Knob", confidence=0.62)

    result = promote_concentric_knobs([inner, outer])

    assert len(result) == 1
    knob = result[0]
    assert knob.kind is ControlKind.CONCENTRIC_KNOB
    assert knob.label == "Concentric"
    assert knob.radius == 30.0
    assert knob.confidence == 0.80


def test_concentric_ratio_out_of_range(make_draft):
    a = make_draft(center=(100, 100), radius=30.0)
    b = make_draft(center=(100, 100), radius=25.0)  # ratio 0.83
    c = make_draft(center=(300, 100), radius=30.0)
    d = make_draft(center=(300, 100), radius=8.0)  # ratio 0.27

    result = promote_concentric_knobs([a, b, c, d])

    assert len(result) == 4
    assert all(x.kind is ControlKind.KNOB for x in result)


def test_concentric_centers_too_far(make_draft):
    # tol = max(6, 0.35·30) = 10.5
    outer = make_draft(center=(100, 100), radius=30.0)
    inner = make_draft(center=(112, 100), radius=15.0)
    assert len(promote_concentric_knobs([outer, inner])) == 2


def test_concentric_pairs_at_most_once(make_draft):
    outer = make_draft(center=(100, 100), radius=30.0)
    inner1 = make_draft(center=(100, 100), radius=15.0)
    inner2 = make_draft(center=(101, 100), radius=12.0)

    result = promote_concentric_knobs([outer, inner1, inner2])

    assert [d.kind for d in result] == [ControlKind.CONCENTRIC_KNOB, ControlKind.KNOB]
    assert result[1].radius == 12.0


def test_concentric_ignores_drafts_without_radius(make_draft):
    knob = make_draft(center=(100, 100), radius=30.0)
    button = make_draft(ControlKind.BUTTON, center=(100, 100), radius=None, rect=Rect(90, 90, 20, 20))
    assert promote_concentric_knobs([knob, button]) == [knob, button]


# Test Case 3: 두 promotion 연결
def test_promote_runs_both(make_draft):
    button = make_draft(ControlKind.BUTTON, center=(50, 50), radius=None, rect=Rect(25, 25, 50, 50))
    light = make_draft(ControlKind.LIGHT, center=(50, 50), radius=8.0)
    outer = make_draft(center=(300, 100), radius=30.0)
    inner = make_draft(center=(300, 100), radius=15.0)

    kinds = sorted(d.kind.value for d in promote([button, light, outer, inner]))

    assert kinds == ["concentricKnob", "litButton"]


def test_promote_drops_knob_repeating_concentric(make_draft):
    outer = make_draft(center=(200, 200), radius=30.0)
    inner = make_draft(center=(200, 200), radius=15.0)
    repeat = make_draft(center=(203, 199), radius=24.0)

    result = promote([outer, inner, repeat])

    assert [d.kind for d in result] == [ControlKind.CONCENTRIC_KNOB]


# ================================================================
# Concentric 중복 흡수
# ================================================================


def test_absorb_concentric_duplicates_by_center(make_draft):
    concentric = make_draft(ControlKind.CONCENTRIC_KNOB, center=(200, 200), radius=30.0, label="Concentric")
    # tol = max(6, 0.35·30) = 10.5
    near = make_draft(center=(208, 200), radius=20.0)
    far = make_draft(center=(300, 200), radius=20.0)

    assert absorb_concentric_duplicates([concentric, near, far]) == [concentric, far]


def test_absorb_concentric_duplicates_by_iou(make_draft):
    concentric = make_draft(ControlKind.CONCENTRIC_KNOB, center=(200, 200), radius=30.0, label="Concentric")
    shifted = make_draft(center=(212, 200), radius=30.0)  # 중심 거리 12 > 10.5, IoU 2880/4320 ≈ 0.67

    result = absorb_concentric_duplicates([concentric, shifted])

    assert result == [concentric]


def test_absorb_concentric_duplicates_keeps_other_kinds(make_draft):
    concentric = make_draft(ControlKind.CONCENTRIC_KNOB, center=(200, 200), radius=30.0, label="Concentric")
    light = make_draft(ControlKind.LIGHT, center=(200, 200), radius=6.0)

    assert absorb_concentric_duplicates([concentric, light]) == [concentric, light]


def test_absorb_concentric_duplicates_without_concentric(make_draft):
    knobs = [make_draft(center=(100, 100), radius=20.0), make_draft(center=(102, 100), radius=20.0)]
    assert absorb_concentric_duplicates(knobs) == knobs
