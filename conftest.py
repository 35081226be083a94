# -*- coding: utf-8 -*-
"""
Fixture condivise: storage e lister finti, Settings valide.
"""
import pytest

from app.config import Settings
from ipfs_storage.w3s_storage import StorageUploader
from listing_manager.stacks_listing_manager import ModelLister

CONTRACT_ADDRESS = "SP2J6ZY48GV1EZ5V2V5RB9MP66SW86PYKKNRV9EJ7"
PRIVATE_KEY = "01" * 32 + "01"


class FakeUploader(StorageUploader):
    def __init__(self, cid="cid-abc", error=None):
        self.cid = cid
        self.error = error
        self.calls = []

    def put(self, file_bytes, file_name):
        self.calls.append((file_bytes, file_name))
        if self.error:
            raise self.error
        return self.cid

    def get(self, cid):
        return self.calls[-1][0]


class FakeLister(ModelLister):
    def __init__(self, listing_id=1, error=None):
        self.listing_id = listing_id
        self.error = error
        self.calls = []

    def list_model(self, price, payment_token=None):
        self.calls.append((price, payment_token))
        if self.error:
            raise self.error
        return self.listing_id

    def listing_status(self, txid):
        return {"txid": txid, "status": "success", "tokenId": self.listing_id}


@pytest.fixture
def settings():
    return Settings(
        contract_address=CONTRACT_ADDRESS,
        private_key=PRIVATE_KEY,
        web3_storage_token="tok",
    )


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def lister():
    return FakeLister()
