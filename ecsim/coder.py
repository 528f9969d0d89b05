"""Replicated-XOR parity coder.

Objects are zero-padded to a multiple of ``data_chunks`` and split into equal
data fragments. A single parity value, the byte-wise XOR of every data
fragment, is copied into each of the ``parity_chunks`` parity fragments.
Because all parity fragments carry the same sum, at most one missing data
fragment can be rebuilt, however many parity fragments survive.
"""

from __future__ import annotations

import hashlib
import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from .errors import ChecksumMismatch, InsufficientChunks, InvalidConfiguration
from .models import Fragment, FragmentId, FragmentKind


@dataclass(frozen=True)
class ReconstructionPlan:
    data: Dict[int, Fragment]
    parity: Optional[Fragment]
    missing_index: Optional[int]
    fragment_size: int

    @property
    def used_ids(self) -> List[FragmentId]:
        used = [self.data[index].fragment_id for index in sorted(self.data)]
        if self.parity is not None:
            used.append(self.parity.fragment_id)
        return used

    @property
    def rebuilt_id(self) -> Optional[FragmentId]:
        if self.missing_index is None:
            return None
        return FragmentId(FragmentKind.DATA, self.missing_index)


def validate_counts(data_chunks: int, parity_chunks: int) -> None:
    if data_chunks < 1:
        raise InvalidConfiguration(f"data_chunks must be at least 1 (got {data_chunks})")
    if parity_chunks < 0:
        raise InvalidConfiguration(f"parity_chunks cannot be negative (got {parity_chunks})")


def fragment_size(length: int, data_chunks: int) -> int:
    return math.ceil(length / data_chunks) if length else 0


def storage_overhead(data_chunks: int, parity_chunks: int) -> float:
    validate_counts(data_chunks, parity_chunks)
    return (data_chunks + parity_chunks) / data_chunks


def checksum(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def can_reconstruct(missing_data: int, readable_parity: int) -> bool:
    if missing_data == 0:
        return True
    return missing_data == 1 and readable_parity > 0


def _xor(buffers: Iterable[bytes], size: int) -> bytes:
    acc = 0
    for buffer in buffers:
        acc ^= int.from_bytes(buffer, "big")
    return acc.to_bytes(size, "big")


def encode(data: bytes, data_chunks: int, parity_chunks: int, object_id: str = "") -> List[Fragment]:
    """Split ``data`` into data fragments followed by replicated parity fragments."""
    validate_counts(data_chunks, parity_chunks)
    data = bytes(data)
    size = fragment_size(len(data), data_chunks)
    padded = data.ljust(size * data_chunks, b"\x00")

    fragments = [
        Fragment(object_id, index, FragmentKind.DATA, padded[index * size:(index + 1) * size])
        for index in range(data_chunks)
    ]
    parity = _xor((fragment.payload for fragment in fragments), size)
    fragments.extend(
        Fragment(object_id, index, FragmentKind.PARITY, parity) for index in range(parity_chunks)
    )
    return fragments


def plan_reconstruction(available: Iterable[Fragment], data_chunks: int, parity_chunks: int) -> ReconstructionPlan:
    """Decide which surviving fragments rebuild the object.

    Raises InsufficientChunks when two or more data fragments are missing, or
    when one is missing and no parity fragment survives.
    """
    validate_counts(data_chunks, parity_chunks)
    data: Dict[int, Fragment] = {}
    parity: Optional[Fragment] = None
    for fragment in available:
        if fragment.kind is FragmentKind.DATA:
            if 0 <= fragment.index < data_chunks:
                data.setdefault(fragment.index, fragment)
        elif 0 <= fragment.index < parity_chunks:
            if parity is None or fragment.index < parity.index:
                parity = fragment

    missing = [index for index in range(data_chunks) if index not in data]
    missing_ids = tuple(FragmentId(FragmentKind.DATA, index) for index in missing)
    if len(missing) >= 2:
        labels = ", ".join(str(fid) for fid in missing_ids)
        raise InsufficientChunks(
            f"{len(missing)} data fragments missing ({labels}); replicated parity rebuilds at most one",
            missing=missing_ids,
        )
    if missing and parity is None:
        raise InsufficientChunks(
            f"data fragment {missing_ids[0]} missing and no parity fragment survives",
            missing=missing_ids,
        )
    if not missing:
        parity = None

    sizes = {fragment.size for fragment in data.values()}
    if parity is not None:
        sizes.add(parity.size)
    if len(sizes) > 1:
        raise ChecksumMismatch(f"fragments disagree on size: {sorted(sizes)}")

    return ReconstructionPlan(
        data=data,
        parity=parity,
        missing_index=missing[0] if missing else None,
        fragment_size=sizes.pop() if sizes else 0,
    )


def reconstruct(
    available: Sequence[Fragment],
    data_chunks: int,
    parity_chunks: int,
    *,
    original_length: Optional[int] = None,
    checksum_hex: Optional[str] = None,
    plan: Optional[ReconstructionPlan] = None,
) -> bytes:
    """Rebuild the original bytes from surviving fragments.

    Without ``original_length`` the trailing zero padding is stripped, which
    also strips genuine trailing NUL bytes from the payload.
    """
    plan = plan or plan_reconstruction(available, data_chunks, parity_chunks)
    pieces = []
    for index in range(data_chunks):
        if index == plan.missing_index:
            survivors = [fragment.payload for fragment in plan.data.values()]
            survivors.append(plan.parity.payload)
            pieces.append(_xor(survivors, plan.fragment_size))
        else:
            pieces.append(plan.data[index].payload)
    joined = b"".join(pieces)

    if original_length is None:
        result = joined.rstrip(b"\x00")
    elif 0 <= original_length <= len(joined):
        result = joined[:original_length]
    else:
        raise ChecksumMismatch(
            f"recorded length {original_length} does not fit {len(joined)} reconstructed bytes"
        )

    if checksum_hex is not None and checksum(result) != checksum_hex:
        raise ChecksumMismatch("reconstructed bytes do not match the stored checksum")
    return result


def decode(
    fragments: Sequence[Fragment],
    data_chunks: int,
    parity_chunks: int,
    *,
    original_length: Optional[int] = None,
    checksum_hex: Optional[str] = None,
) -> bytes:
    return reconstruct(
        fragments,
        data_chunks,
        parity_chunks,
        original_length=original_length,
        checksum_hex=checksum_hex,
    )
