"""Delete the durable document and its backup (useful for testing)."""

from dispatch.config import get_settings


def reset_all_state() -> None:
    """Remove the data file, its backup and any leftover assignment locks."""
    settings = get_settings()
    data_file = settings.data_file
    targets = [
        data_file,
        data_file.with_name(data_file.name + ".bak"),
        data_file.with_name(data_file.name + ".tmp"),
    ]

    print(f"\n⚠️  WARNING: This will delete ALL dispatch data in {data_file}!")
    response = input("Are you sure? (yes/no): ")

    if response.lower() != "yes":
        print("Cancelled.")
        return

    print("\nResetting state...")

    for path in targets:
        if path.exists():
            path.unlink()
            print(f"✓ Removed {path}")

    if settings.lock_dir.is_dir():
        for lock in settings.lock_dir.glob("assign-*"):
            lock.rmdir()
            print(f"✓ Released {lock}")

    print("✓ All dispatch state cleared\n")


if __name__ == "__main__":
    reset_all_state()
