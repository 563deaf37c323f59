"""
Ultima - User-facing strings.

Fixed interface text in the two supported languages. Notices written to
the chat log by the session come from here as well.
"""

from typing import Dict

TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "uk": {
        "title": "Secure P2P",
        "subtitle": "НАВІТЬ СЕРВЕРИ НЕ БАЧАТЬ ВАШ ЧАТ",
        "online": "У мережі",
        "offline": "Офлайн",
        "connected": "З'єднано",
        "typing": "друкує",
        "host": "Створити код (Host)",
        "join": "Приєднатися (Join)",
        "setup_title": "Налаштування безпеки",
        "voice_toggle": "Голосовий зв'язок",
        "voice_hint": "Для роботи обидва пристрої повинні увімкнути цей перемикач перед з'єднанням.",
        "placeholder": "Ваше повідомлення...",
        "status": "Статус",
        "protocol": "Протокол",
        "cipher": "Шифр",
        "ice": "ICE Транспорт",
        "audio": "Аудіо канал",
        "active": "Активний",
        "inactive": "Неактивний",
        "waiting": "Очікування...",
        "copy": "КОПІЮВАТИ",
        "enc_level_label": "РІВЕНЬ ЗАХИСТУ РУКОСТИСКАННЯ (SDP):",
        "enc_standard": "Стандарт (Внутрішній ключ)",
        "enc_personal": "Особистий пароль",
        "enc_open": "Відкритий обмін",
        "pass_placeholder": "Введіть пароль для ключів...",
        "confirm_title": "Завершити?",
        "confirm_desc": "Закриття через {time} сек.",
        "yes": "Так",
        "no": "Ні",
        "stage_gen": "Генерація...",
        "stage_paste": "Крок 1: Вставте код",
        "stage_process": "Обробити",
        "stage_send_back": "ВАШ КОД ДЛЯ ПАРТНЕРА:",
        "stage_reply": "Крок 2: Вставте відповідь",
        "stage_your_reply": "Крок 2: Ваша відповідь",
        "bad_code": "Невірний пароль або пошкоджений код",
        "mic_denied": "Мікрофон недоступний, продовжуємо без звуку",
        "tech_note": "Це з'єднання Peer-to-Peer. Ключі шифрування згенеровані на вашому пристрої і не передаються через сервер.",
    },
    "en": {
        "title": "Secure P2P",
        "subtitle": "DIRECT END-TO-END ENCRYPTION",
        "online": "Online",
        "offline": "Offline",
        "connected": "Connected",
        "typing": "typing",
        "host": "Host Session",
        "join": "Join Session",
        "setup_title": "Security Settings",
        "voice_toggle": "Voice Call",
        "voice_hint": "Both must enable this before connecting.",
        "placeholder": "Type a message...",
        "status": "Status",
        "protocol": "Protocol",
        "cipher": "Cipher",
        "ice": "ICE Transport",
        "audio": "Audio Channel",
        "active": "Active",
        "inactive": "Inactive",
        "waiting": "Waiting...",
        "copy": "COPY",
        "enc_level_label": "HANDSHAKE PROTECTION (SDP):",
        "enc_standard": "Standard (Internal Key)",
        "enc_personal": "Personal Passphrase",
        "enc_open": "Open Exchange",
        "pass_placeholder": "Passphrase for keys...",
        "confirm_title": "End?",
        "confirm_desc": "Closing in {time} sec.",
        "yes": "Yes",
        "no": "No",
        "stage_gen": "Generating...",
        "stage_paste": "Step 1: Paste Code",
        "stage_process": "Process",
        "stage_send_back": "YOUR CODE FOR PEER:",
        "stage_reply": "Step 2: Paste Reply",
        "stage_your_reply": "Step 2: Your Reply",
        "bad_code": "Wrong password or corrupted code",
        "mic_denied": "Microphone unavailable, continuing without audio",
        "tech_note": "This is a Peer-to-Peer connection. Encryption keys are generated locally and never touch a server.",
    },
}

DEFAULT_LANGUAGE = "en"


def get_strings(language: str) -> Dict[str, str]:
    """Strings for a language, falling back to English."""
    return TRANSLATIONS.get(language, TRANSLATIONS[DEFAULT_LANGUAGE])
