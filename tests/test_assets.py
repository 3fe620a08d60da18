import asyncio

from conftest import make_image_base64, make_scenes
from joke_video_service.assets import ImageAssets, asset_key


def test_load_decodes_and_emits_event():
    image_b64 = make_image_base64()
    scene = make_scenes(images=[image_b64])[0]
    assets = ImageAssets()
    events = []
    assets.subscribe(events.append)

    image = assets.load(scene)

    assert image is not None and image.mode == "RGB"
    assert assets.is_loaded(scene)
    assert events == [asset_key(image_b64)]
    # cached: no second event
    assets.load(scene)
    assert len(events) == 1


def test_undecodable_image_keeps_placeholder():
    scene = make_scenes(images=["bm90IGFuIGltYWdl"])[0]
    assets = ImageAssets()
    assert assets.load(scene) is None
    assert not assets.is_loaded(scene)


def test_images_follow_content_after_reorder():
    red, green = make_image_base64((255, 0, 0)), make_image_base64((0, 255, 0))
    scenes = make_scenes((5, 5), images=[red, green])
    assets = ImageAssets()
    for scene in scenes:
        assets.load(scene)

    swapped = [scenes[1], scenes[0]]
    assert assets.get(swapped[0]).getpixel((0, 0)) == (0, 255, 0)
    assert assets.get(swapped[1]).getpixel((0, 0)) == (255, 0, 0)


def test_load_all_skips_missing_and_loaded():
    images = [make_image_base64((1, 2, 3)), None, make_image_base64((4, 5, 6))]
    scenes = make_scenes(images=images)
    assets = ImageAssets()
    assets.load(scenes[0])

    loaded = asyncio.run(assets.load_all(scenes))

    assert loaded == 1
    assert [assets.is_loaded(scene) for scene in scenes] == [True, False, True]
