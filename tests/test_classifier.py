import asyncio

import numpy as np
import pytest

from fingerspell.classifier import GroupClassifier, LoadState
from fingerspell.errors import AssetLoadError, NotReadyError
from fingerspell.model_assets import resolve_classifier_assets

from conftest import CountingLoader, FakeModel


def test_concurrent_loads_share_one_underlying_load():
    loader = CountingLoader(FakeModel([0.125] * 8), delay_s=0.05)
    clf = GroupClassifier("model.keras", loader=loader)

    async def main():
        await asyncio.gather(clf.load(), clf.load(), clf.load())

    asyncio.run(main())
    assert loader.calls == ["model.keras"]
    assert clf.state is LoadState.READY
    assert clf.is_ready


def test_concurrent_loads_share_one_failure():
    loader = CountingLoader(error=FileNotFoundError("model.keras"), delay_s=0.05)
    clf = GroupClassifier("model.keras", loader=loader)

    async def main():
        return await asyncio.gather(clf.load(), clf.load(), return_exceptions=True)

    results = asyncio.run(main())
    assert len(loader.calls) == 1
    assert all(isinstance(r, AssetLoadError) for r in results)
    assert results[0] is results[1]
    assert clf.state is LoadState.FAILED
    assert isinstance(clf.error, AssetLoadError)


def test_failed_load_is_not_retried_until_reload():
    loader = CountingLoader(error=OSError("corrupt"))
    clf = GroupClassifier("model.keras", loader=loader)

    async def main():
        with pytest.raises(AssetLoadError):
            await clf.load()
        with pytest.raises(AssetLoadError):
            await clf.load()
        assert len(loader.calls) == 1

        loader.error = None
        loader.model = FakeModel([0.125] * 8)
        await clf.reload()

    asyncio.run(main())
    assert len(loader.calls) == 2
    assert clf.is_ready
    assert clf.error is None


def test_concurrent_reloads_share_one_underlying_load():
    loader = CountingLoader(error=OSError("corrupt"), delay_s=0.05)
    clf = GroupClassifier("model.keras", loader=loader)

    async def main():
        with pytest.raises(AssetLoadError):
            await clf.load()
        loader.error = None
        loader.model = FakeModel([0.125] * 8)
        await asyncio.gather(clf.reload(), clf.reload(), clf.load())

    asyncio.run(main())
    assert len(loader.calls) == 2
    assert clf.is_ready


def test_reload_reports_loading_before_the_task_runs():
    loader = CountingLoader(FakeModel([0.125] * 8))
    clf = GroupClassifier("model.keras", loader=loader)

    async def main():
        pending = asyncio.ensure_future(clf.reload())
        await asyncio.sleep(0)
        assert clf.state is LoadState.LOADING
        await pending

    asyncio.run(main())
    assert clf.state is LoadState.READY
    assert loader.calls == ["model.keras"]


def test_missing_model_file_is_a_load_failure(tmp_path):
    clf = GroupClassifier(str(tmp_path / "absent.keras"))
    with pytest.raises(AssetLoadError) as info:
        asyncio.run(clf.load())
    assert info.value.path == str(tmp_path / "absent.keras")
    assert clf.state is LoadState.FAILED


def test_predict_before_load_is_refused():
    clf = GroupClassifier("model.keras", loader=CountingLoader(FakeModel([0.125] * 8)))
    assert clf.state is LoadState.UNLOADED
    with pytest.raises(NotReadyError):
        clf.predict(np.full((400, 400, 3), 255, dtype=np.uint8))


def test_predict_after_failed_load_is_refused():
    clf = GroupClassifier("model.keras", loader=CountingLoader(error=OSError("bad")))
    with pytest.raises(AssetLoadError):
        asyncio.run(clf.load())
    with pytest.raises(NotReadyError):
        clf.predict(np.full((400, 400, 3), 255, dtype=np.uint8))


def test_predict_scales_and_resizes_input(ready_classifier):
    probs = [0.05, 0.05, 0.6, 0.1, 0.05, 0.05, 0.05, 0.05]
    clf = ready_classifier(probs)
    out = clf.predict(np.full((200, 200, 3), 255, dtype=np.uint8))

    np.testing.assert_allclose(out, probs, rtol=1e-6)
    (x,) = clf._model.inputs
    assert x.shape == (1, 400, 400, 3)
    assert x.dtype == np.float32
    assert x.max() == pytest.approx(1.0)


def test_predict_rejects_wrong_output_size(ready_classifier):
    clf = ready_classifier([0.5, 0.5])
    with pytest.raises(ValueError):
        clf.predict(np.zeros((400, 400, 3), dtype=np.uint8))


def test_resolve_single_file(tmp_path):
    path = tmp_path / "model.h5"
    path.write_bytes(b"x")
    assets = resolve_classifier_assets(str(path))
    assert assets.model_path == str(path)
    assert not assets.is_split


def test_resolve_description_with_weights(tmp_path):
    desc = tmp_path / "model.json"
    desc.write_text("{}")
    weights = tmp_path / "model.weights.h5"
    weights.write_bytes(b"x")
    assets = resolve_classifier_assets(str(desc))
    assert assets.weights_path == str(weights)


def test_resolve_description_without_weights(tmp_path):
    desc = tmp_path / "model.json"
    desc.write_text("{}")
    with pytest.raises(AssetLoadError):
        resolve_classifier_assets(str(desc))


def test_resolve_unknown_file_type(tmp_path):
    path = tmp_path / "model.bin"
    path.write_bytes(b"x")
    with pytest.raises(AssetLoadError):
        resolve_classifier_assets(str(path))
