"""Tests for device id normalization."""

from amdexporter.workloads.device_ids import device_keys, normalize_device_id


def test_gpu_instance_id():
    assert normalize_device_id("amd123/gi456") == ["123-456"]


def test_gpu_instance_requires_exact_shape():
    # Trailing text breaks the instance pattern; the colon-free id has no other rule
    assert normalize_device_id("amd1/gi2x") == []


def test_virtual_gpu_id():
    assert normalize_device_id("80EE/vgpu-2345") == ["80EE"]


def test_sriov_gpu_id():
    assert normalize_device_id("0000:b3:00.0/mxgpu1") == ["0000:b3:00.0"]


def test_vgpu_wins_over_colon():
    assert normalize_device_id("0000:8e:00.0/vgpu-1") == ["0000:8e:00.0"]


def test_colon_id_adds_prefix_before_first_colon():
    assert normalize_device_id("0000:b3:00.0") == ["0000"]


def test_unrecognized_id_adds_nothing():
    assert normalize_device_id("GPU-1234abcd") == []
    assert normalize_device_id("") == []


def test_device_keys_end_with_raw_id():
    assert device_keys("amd0/gi1") == ["0-1", "amd0/gi1"]
    assert device_keys("plain") == ["plain"]
