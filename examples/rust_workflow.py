# rust_workflow.py
# examples/rust.yml written with the Python DSL.
from __future__ import annotations

from relayci.dsl import build


def workflow():
    return (
        build("Rust")
        .on_push("*")
        .on_pull_request("main")
        .with_env(CARGO_TERM_COLOR="always")
        .runs_on("ubuntu-latest")
        .uses("actions/checkout@v4")
        .uses(
            "actions-rs/toolchain@v1",
            "Set up nightly Rust toolchain",
            toolchain="nightly",
            components="rustfmt, clippy, miri",
        )
        .step("Build", "cargo build --verbose")
        .step("Run tests", "cargo test --verbose")
        .step("Run Miri tests", "cargo +nightly miri test --verbose")
        .build()
    )
