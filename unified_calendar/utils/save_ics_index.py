def reset_ics_index(output_path="ics_index.txt"):
    open(output_path, "w").close()


def append_ics_index(property_key: str, property_name: str, location: str, output_path="ics_index.txt"):
    line = f"{property_key} | {property_name} | {location}\n"
    with open(output_path, "a", encoding="utf-8") as f:
        f.write(line)
