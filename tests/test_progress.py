import pytest
from pydantic import ValidationError

from pipeflow.core.models import Progress, ProgressWrapper
from pipeflow.core.progress import render_progress, render_wrapper


def test_flat_progress():
    text, frac = render_progress(Progress(name="x", total=10, done=3))
    assert text == '"x" (3/10)'
    assert frac == 0.3


def test_indeterminate_progress_has_no_fraction():
    text, frac = render_progress(Progress(name="x", total=0, done=0))
    assert text == '"x" (0/0)'
    assert frac == 0


def test_nested_progress_blends_child_into_one_parent_unit():
    p = Progress(name="A", total=2, done=1, progress=Progress(name="B", total=4, done=2))
    text, frac = render_progress(p)
    assert text == '"A" (1/2) -> "B" (2/4)'
    assert frac == 0.75


def test_child_correction_divides_by_parent_total():
    # 3 levels: C=1/2, B=(0 + 0.5)/4, A=1/5 + 0.125/5
    p = Progress(
        name="A", total=5, done=1,
        progress=Progress(name="B", total=4, done=0, progress=Progress(name="C", total=2, done=1)),
    )
    text, frac = render_progress(p)
    assert text == '"A" (1/5) -> "B" (0/4) -> "C" (1/2)'
    assert frac == pytest.approx(0.2 + 0.125 / 5)


def test_indeterminate_parent_ignores_child():
    p = Progress(name="A", total=0, done=0, progress=Progress(name="B", total=1, done=1))
    _, frac = render_progress(p)
    assert frac == 0


def test_wrapper_with_message():
    w = ProgressWrapper(
        message="hello\n",
        progress=Progress(name="A", total=2, done=1, progress=Progress(name="B", total=4, done=2)),
    )
    assert render_wrapper(w) == '75% "A" (1/2) -> "B" (2/4) -> "hello"'


def test_wrapper_quotes_are_not_escaped():
    w = ProgressWrapper(message='say "hi"', progress=Progress(name="q", total=1, done=1))
    assert render_wrapper(w) == '100% "q" (1/1) -> "say "hi""'


def test_wrapper_indeterminate_without_message():
    w = ProgressWrapper(progress=Progress(name="build", total=0, done=0))
    assert render_wrapper(w) == '0% "build" (0/0)'


def test_wrapper_truncates_percentage():
    w = ProgressWrapper(progress=Progress(name="x", total=3, done=2))
    assert render_wrapper(w) == '66% "x" (2/3)'


def test_wrapper_without_progress():
    assert render_wrapper(ProgressWrapper(message="starting\n")) == '0% "starting"'


def test_to_short_string_delegates():
    p = Progress(name="x", total=4, done=1)
    assert p.to_short_string() == ('"x" (1/4)', 0.25)
    assert ProgressWrapper(progress=p).to_short_string() == '25% "x" (1/4)'


def test_progress_decodes_nested_wire_shape():
    w = ProgressWrapper.model_validate_json(
        '{"message": "m", "progress": {"name": "A", "total": 2, "done": 1,'
        ' "progress": {"name": "B", "total": 4, "done": 2}}}'
    )
    assert w.progress.sub_progress.name == "B"
    assert w.progress.sub_progress.sub_progress is None


def test_progress_rejects_negative_counts():
    with pytest.raises(ValidationError):
        Progress(name="x", total=-1, done=0)


def test_progress_is_a_snapshot():
    p = Progress(name="x", total=1, done=0)
    with pytest.raises(ValidationError):
        p.done = 1


def test_null_message_is_accepted():
    w = ProgressWrapper.model_validate_json('{"message": null, "progress": {"name": "x", "total": 1, "done": 0}}')
    assert render_wrapper(w) == '0% "x" (0/1)'


def test_progress_rejects_counts_beyond_64_bits():
    with pytest.raises(ValidationError):
        ProgressWrapper.model_validate_json('{"progress": {"name": "x", "total": 1, "done": 1%s}}' % ("0" * 400))
