import json
import os
import subprocess
import pytest
from datetime import datetime

from PIL import Image

import sortify.metadata.extract as extract_module
from conftest import FailingExtractor, FixedExtractor
from sortify.exceptions import ExtractionError
from sortify.metadata.extract import (
    ExifReadExtractor,
    ExifToolExtractor,
    ExtractorChain,
    MediaInfoExtractor,
    PillowExtractor,
)
from sortify.metadata.timestamps import is_zero_timestamp, parse_timestamp, select_best_timestamp
from sortify.models import MediaFile

# --- Timestamp parsing ---

@pytest.mark.parametrize("raw, expected", [
    ("2024:12:19 14:30:52", datetime(2024, 12, 19, 14, 30, 52)),
    ("2024:12:19 14:30:52.123", datetime(2024, 12, 19, 14, 30, 52, 123000)),
    ("2024:12:19 14:30:52.5", datetime(2024, 12, 19, 14, 30, 52, 500000)),
    ("2024:12:19 14:30:52.123456", datetime(2024, 12, 19, 14, 30, 52, 123000)),
    ("2024:12:19 14:30:52.68+01:00", datetime(2024, 12, 19, 14, 30, 52, 680000)),
    ("2025-09-24T08:20:49-04:00", datetime(2025, 9, 24, 8, 20, 49)),
    ("2025-09-24T08:20:49.250Z", datetime(2025, 9, 24, 8, 20, 49, 250000)),
    ("UTC 2023-01-01 12:00:00", datetime(2023, 1, 1, 12, 0, 0)),
    ("2023-01-01 12:00:00 UTC", datetime(2023, 1, 1, 12, 0, 0)),
])
def test_parse_timestamp(raw, expected):
    assert parse_timestamp(raw) == expected

@pytest.mark.parametrize("raw", ["", "garbage", "0000:00:00 00:00:00", "2024:13:01 00:00:00"])
def test_parse_timestamp_rejects(raw):
    with pytest.raises(ValueError):
        parse_timestamp(raw)

def test_is_zero_timestamp():
    assert is_zero_timestamp("0000:00:00 00:00:00")
    assert not is_zero_timestamp("2024:01:01 00:00:00")

# --- Tag priority ---

def test_photo_prefers_subsecond_composites():
    tags = {
        "DateTimeOriginal": "2020:01:01 10:00:00",
        "SubSecDateTimeOriginal": "2020:01:01 10:00:00.456",
    }
    assert select_best_timestamp(tags) == datetime(2020, 1, 1, 10, 0, 0, 456000)

def test_photo_combines_base_and_subsec_fields():
    tags = {"DateTimeOriginal": "2020:01:01 10:00:00", "SubSecTimeOriginal": "7"}
    assert select_best_timestamp(tags) == datetime(2020, 1, 1, 10, 0, 0, 700000)

def test_photo_falls_back_to_base_fields_in_order():
    tags = {"ModifyDate": "2021:02:02 02:02:02", "DateTimeDigitized": "2019:01:01 01:01:01"}
    assert select_best_timestamp(tags) == datetime(2021, 2, 2, 2, 2, 2)

def test_create_date_is_last_resort_and_zero_is_ignored():
    assert select_best_timestamp({"CreateDate": "2018:08:08 08:08:08"}) == datetime(2018, 8, 8, 8, 8, 8)
    with pytest.raises(ExtractionError):
        select_best_timestamp({"CreateDate": "0000:00:00 00:00:00"})

def test_video_rules_apply_with_media_dates():
    tags = {
        "MediaCreateDate": "2022:05:05 05:05:05",
        "ModifyDate": "2023:01:01 00:00:00",
        "SubSecCreateDate": "2000:01:01 00:00:00.001",
    }
    # Photo composites are not consulted for video
    assert select_best_timestamp(tags) == datetime(2022, 5, 5, 5, 5, 5)

def test_no_timestamp_raises():
    with pytest.raises(ExtractionError):
        select_best_timestamp({"Model": "X100"})

# --- Extractors ---

@pytest.fixture
def exif_jpeg(tmp_path):
    path = tmp_path / "photo.jpg"
    img = Image.new("RGB", (8, 8), color=(200, 10, 10))
    exif = Image.Exif()
    exif[0x0132] = "2023:05:06 07:08:09"
    img.save(path, exif=exif)
    return MediaFile.from_path(path)

def test_exifread_extractor(exif_jpeg):
    ts = ExifReadExtractor().attempt(exif_jpeg)
    assert ts.value == datetime(2023, 5, 6, 7, 8, 9)
    assert ts.source == "exifread"

def test_pillow_extractor(exif_jpeg):
    ts = PillowExtractor().attempt(exif_jpeg)
    assert ts.value == datetime(2023, 5, 6, 7, 8, 9)
    assert ts.source == "pillow"

def test_image_extractors_fail_on_non_image(tmp_path):
    p = tmp_path / "fake.jpg"
    p.write_bytes(b"definitely not a jpeg")
    media = MediaFile.from_path(p)

    for extractor in (ExifReadExtractor(), PillowExtractor()):
        with pytest.raises(ExtractionError):
            extractor.attempt(media)

# Mock MediaInfo class structure
class MockTrack:
    def __init__(self, **kwargs):
        self.track_type = "General"
        for k, v in kwargs.items():
            setattr(self, k, v)

class MockMediaInfo:
    def __init__(self, tracks):
        self.tracks = tracks

    @classmethod
    def parse(cls, path):
        return cls([MockTrack(
            duration=5000,
            encoded_date="2023-01-01 12:00:00 UTC",
            tagged_date="2024-01-01 00:00:00 UTC",
        )])

def test_mediainfo_extractor(monkeypatch, tmp_path):
    monkeypatch.setattr(extract_module, "MediaInfo", MockMediaInfo)
    vid = tmp_path / "test.mp4"
    vid.touch()

    ts = MediaInfoExtractor().attempt(MediaFile.from_path(vid))

    assert ts.value == datetime(2023, 1, 1, 12, 0, 0)
    assert ts.source == "mediainfo"

def test_mediainfo_skips_images(monkeypatch, tmp_path):
    monkeypatch.setattr(extract_module, "MediaInfo", MockMediaInfo)
    img = tmp_path / "test.jpg"
    img.touch()
    with pytest.raises(ExtractionError):
        MediaInfoExtractor().attempt(MediaFile.from_path(img))

def _fake_run(returncode=0, stdout="", exc=None):
    def run(cmd, **kwargs):
        assert kwargs["timeout"] == 2.5
        if exc:
            raise exc
        out = stdout.encode("utf-8") if isinstance(stdout, str) else stdout
        return subprocess.CompletedProcess(cmd, returncode, stdout=out)
    return run

@pytest.fixture
def any_media(tmp_path):
    p = tmp_path / "clip.mov"
    p.write_bytes(b"x")
    return MediaFile.from_path(p)

def test_exiftool_extractor_parses_json(monkeypatch, any_media):
    out = json.dumps([{"SourceFile": "clip.mov", "MediaCreateDate": "2019:07:07 07:07:07"}])
    monkeypatch.setattr(extract_module.subprocess, "run", _fake_run(stdout=out))

    ts = ExifToolExtractor(timeout=2.5).attempt(any_media)

    assert ts.value == datetime(2019, 7, 7, 7, 7, 7)
    assert ts.source == "exiftool"

def test_exiftool_tolerates_undecodable_bytes(monkeypatch, any_media):
    out = b'[{"DateTimeOriginal": "2024:01:01 00:00:00", "Make": "\xff\xfe"}]'
    monkeypatch.setattr(extract_module.subprocess, "run", _fake_run(stdout=out))

    ts = ExifToolExtractor(timeout=2.5).attempt(any_media)

    assert ts.value == datetime(2024, 1, 1, 0, 0, 0)

@pytest.mark.skipif(os.name != "posix", reason="needs a shell script stand-in for exiftool")
def test_chain_survives_real_subprocess_with_binary_output(tmp_path, any_media):
    fake = tmp_path / "exiftool"
    fake.write_text("#!/bin/sh\nprintf '[{\"Make\": \"\\377\\376\"}]'\n")
    fake.chmod(0o755)

    ts = ExtractorChain([ExifToolExtractor(binary=str(fake))]).resolve(any_media)

    assert ts.source == "mtime"

@pytest.mark.parametrize("fake", [
    _fake_run(exc=subprocess.TimeoutExpired(cmd="exiftool", timeout=2.5)),
    _fake_run(exc=FileNotFoundError("exiftool")),
    _fake_run(returncode=1, stdout="[]"),
    _fake_run(stdout="not json"),
    _fake_run(stdout="[]"),
    _fake_run(stdout='[{"Model": "X"}]'),
])
def test_exiftool_failures_map_to_extraction_error(monkeypatch, any_media, fake):
    monkeypatch.setattr(extract_module.subprocess, "run", fake)
    with pytest.raises(ExtractionError):
        ExifToolExtractor(timeout=2.5).attempt(any_media)

# --- Chain ---

def test_chain_falls_through_to_next_extractor(tmp_path):
    p = tmp_path / "a.jpg"
    p.write_bytes(b"a")
    dt = datetime(2022, 2, 2, 2, 2, 2)

    chain = ExtractorChain([FailingExtractor(), FixedExtractor({"a.jpg": dt})])
    ts = chain.resolve(MediaFile.from_path(p))

    assert ts.value == dt
    assert ts.source == "fixed"

def test_chain_stops_at_first_success(tmp_path):
    p = tmp_path / "a.jpg"
    p.write_bytes(b"a")
    first = FixedExtractor({"a.jpg": datetime(2001, 1, 1)})
    second = FixedExtractor({"a.jpg": datetime(2002, 2, 2)})

    assert ExtractorChain([first, second]).resolve(MediaFile.from_path(p)).value == datetime(2001, 1, 1)

def test_chain_mtime_fallback_has_no_subseconds(tmp_path):
    p = tmp_path / "a.jpg"
    p.write_bytes(b"a")
    mtime = datetime(2015, 6, 7, 8, 9, 10, 987654).timestamp()
    os.utime(p, (mtime, mtime))

    ts = ExtractorChain([FailingExtractor()]).resolve(MediaFile.from_path(p))

    assert ts.source == "mtime"
    assert ts.value == datetime(2015, 6, 7, 8, 9, 10)

def test_chain_build_keeps_exiftool_last(monkeypatch):
    monkeypatch.setattr(ExifToolExtractor, "available", lambda self: True)

    chain = ExtractorChain.build(["exiftool", "mediainfo", "exifread"], exiftool_timeout=3)

    assert [e.name for e in chain.extractors] == ["mediainfo", "exifread", "exiftool"]
    assert chain.extractors[-1].timeout == 3

def test_chain_build_without_exiftool():
    chain = ExtractorChain.build(["pillow"], use_exiftool=False)
    assert [e.name for e in chain.extractors] == ["pillow"]

def test_chain_build_rejects_unknown_extractor():
    with pytest.raises(ValueError):
        ExtractorChain.build(["nope"], use_exiftool=False)
