"""Localization — message tables for the three supported languages.

``uz`` (Uzbek, Latin script) is the default and the fallback for any key
missing in ``uzc`` (Uzbek, Cyrillic) or ``ru`` (Russian).
"""

from __future__ import annotations

import logging
from decimal import Decimal

from order_bridge.domain.money import round2
from order_bridge.models.user import DEFAULT_LANGUAGE

logger = logging.getLogger(__name__)


_UZ: dict[str, str] = {
    # ── Registration / general ───────────────────────────
    "choose_language": "🌐 Tilni tanlang / Тилни танланг / Выберите язык",
    "welcome": "👋 Assalomu alaykum, {name}! Ro'yxatdan o'tish uchun telefon raqamingizni yuboring.",
    "already_registered": "👋 Xush kelibsiz, {name}! Buyurtma berish uchun do'konni oching.",
    "help": (
        "ℹ️ Buyruqlar:\n"
        "/start — boshlash\n"
        "/balance — balans\n"
        "/orders — buyurtmalarim\n"
        "/lang — tilni o'zgartirish\n"
        "/help — yordam"
    ),
    "register_prompt": "📱 Davom etish uchun ro'yxatdan o'ting: pastdagi tugma orqali telefon raqamingizni yuboring.",
    "share_contact_button": "📱 Raqamni yuborish",
    "open_shop_button": "🛍 Do'konni ochish",
    "registered": "✅ Ro'yxatdan o'tdingiz! Endi buyurtma berishingiz mumkin.",
    "contact_self_only": "⚠️ Iltimos, faqat o'zingizning raqamingizni yuboring.",
    "language_changed": "✅ Til o'zgartirildi.",
    "menu_hint": "Quyidagi menyudan foydalaning.",
    "menu_balance": "💰 Balans",
    "menu_orders": "📦 Buyurtmalarim",
    "menu_help": "ℹ️ Yordam",
    "menu_language": "🌐 Til",
    "menu_settings": "⚙️ Sozlamalar",
    "balance": "💰 Balansingiz: {amount}",
    "balance_unavailable": "⚠️ Balansni hozircha olib bo'lmadi. Keyinroq urinib ko'ring.",
    "no_orders": "📭 Sizda hali buyurtmalar yo'q.",
    "orders_title": "📦 Oxirgi buyurtmalaringiz:",
    "generic_error": "⚠️ Kutilmagan xatolik yuz berdi. Iltimos, keyinroq urinib ko'ring.",
    "counterparty_deleted": "⚠️ Hisobingiz tizimdan o'chirildi. Iltimos, /start orqali qayta ro'yxatdan o'ting.",
    # ── Draft flow ───────────────────────────────────────
    "draft_ready": "🛒 Savatingiz tayyor. Qabul qilish usulini tanlang:",
    "cart_empty": "🛒 Savatingiz bo'sh. Avval do'kondan mahsulot tanlang.",
    "no_valid_items": "⚠️ Tanlangan mahsulotlar do'konda topilmadi.",
    "choose_delivery": "🚚 Iltimos, qabul qilish usulini tanlang:",
    "needs_address": "📍 Iltimos, yetkazib berish manzilini yuboring.",
    "not_registered": "📱 Buyurtma berish uchun avval ro'yxatdan o'ting: /start",
    "pickup": "🏪 Olib ketish",
    "delivery": "🚚 Yetkazib berish",
    "send_address": "📍 Yetkazib berish manzilini yuboring: lokatsiyani ulashing yoki manzilni yozing.",
    "send_address_with_saved": "📍 Yetkazib berish manzilini yuboring yoki saqlangan manzildan foydalaning.",
    "send_location_button": "📍 Lokatsiyani yuborish",
    "use_saved": "🏠 Saqlangan manzil: {address}",
    "location_saved": "✅ Manzil saqlandi.",
    "order_summary_title": "🧾 Buyurtmangiz:",
    "confirm_question": "Buyurtmani tasdiqlaysizmi?",
    "confirm_button": "✅ Tasdiqlash",
    "cancel_button": "❌ Bekor qilish",
    "order_received": "📝 Buyurtma qabul qilindi.",
    "order_cancelled": "❌ Buyurtma bekor qilindi.",
    "order_failed": "⚠️ Buyurtmani yuborib bo'lmadi. Savatingiz saqlandi, iltimos qayta urinib ko'ring.",
    "pdf_unavailable": "⚠️ Hujjatni hozircha tayyorlab bo'lmadi.",
    # ── Shared labels ────────────────────────────────────
    "label_total": "Jami",
    "label_delivery": "Qabul qilish",
    "label_delivery_type": "Yetkazib berish turi",
    "label_address": "Manzil",
    "label_delivery_address": "Yetkazib berish manzili",
    "label_location": "Lokatsiya",
    "label_note": "Izoh",
    "label_status": "Holat",
    "label_new_status": "Yangi holat",
    "label_due": "Qolgan to'lov",
    "label_paid": "To'langan",
    "label_items": "Mahsulotlar",
    "label_driver_model": "Mashina modeli",
    "label_driver_number": "Mashina raqami",
    "label_client": "Mijoz",
    "label_phone": "Telefon",
    "label_type": "Turi",
    "label_amount": "Summa",
    "label_balance": "Balansingiz",
    "label_apartment": "Kvartira",
    "label_entrance": "Kirish",
    "label_floor": "Qavat",
    "label_intercom": "Domofon raqami",
    "delivery_pickup": "🏪 Olib ketish",
    "delivery_delivery": "🚚 Yetkazib berish",
    "delivery_unknown": "Ko'rsatilmagan",
    "map_button": "🗺 Kartada ochish",
    "pdf_button": "📄 PDF",
    # ── ERP notifications ────────────────────────────────
    "order_created": "✅ Siz uchun {name} raqamli buyurtma yaratildi.",
    "order_updated": "🔄 Buyurtmangiz {name} yangilandi.",
    "shipment_created": "📦 Yo'lga chiqarish hujjati yaratildi: {name}",
    "shipment_updated": "🔄 Yo'lga chiqarish hujjati {name} yangilandi.",
    "payment_received": "💰 To'lovingiz qabul qilindi!",
    "payment_cash": "Naqd pul",
    "payment_bank": "Bank o'tkazmasi",
    "admin_new_order": "🛒 Yangi buyurtma: {name}",
    "admin_order_updated": "🔄 Buyurtma {name} yangilandi",
    "admin_new_shipment": "📦 Yangi yo'lga chiqarish hujjati: {name}",
    "admin_new_payment": "💰 Yangi to'lov!",
    "admin_new_user": "👤 Yangi foydalanuvchi: {name}",
    # ── Admin panel ──────────────────────────────────────
    "not_admin": "⛔ Bu buyruq faqat administratorlar uchun.",
    "admin_title": "⚙️ Bildirishnoma sozlamalari. Kerakli turlarni belgilang va saqlang:",
    "admin_saved": "✅ Sozlamalar saqlandi.",
    "admin_discarded": "Sozlamalar o'zgartirilmadi.",
    "admin_save": "💾 Saqlash",
    "admin_cancel": "↩️ Orqaga",
    "pref_new_user": "Yangi foydalanuvchilar",
    "pref_new_order": "Yangi buyurtmalar",
    "pref_order_update": "Buyurtma yangilanishlari",
    "pref_payment": "To'lovlar",
    # ── Scheduled messages ───────────────────────────────
    "reminder_followup": "Buyurtmangizdan mamnunmisiz? Yana buyurtma berishga tayyormisiz? 🛒",
    "debt_reminder": "⚠️ Eslatma: qarzdorligingiz {amount}. Iltimos, to'lovni amalga oshiring.",
    "report_daily_title": "📊 Kunlik hisobot ({date})",
    "report_weekly_title": "📊 Haftalik hisobot ({start} — {end})",
    "report_orders": "🛒 Buyurtmalar: {count}",
    "report_revenue": "💵 Tushum: {amount}",
    "report_new_users": "👤 Yangi mijozlar: {count}",
    "report_top_products": "🏆 Eng ko'p sotilganlar:",
    "report_no_sales": "Sotuvlar yo'q",
    # ── Receipt ──────────────────────────────────────────
    "receipt_doc_type": "YUBORILDI",
    "receipt_client": "Mijoz",
    "receipt_name": "Ism",
    "receipt_col_name": "Nomi",
    "receipt_col_qty": "Miqdor",
    "receipt_col_price": "Narx",
    "receipt_col_total": "Jami",
    "receipt_col_remaining_qty": "Qoldi",
    "receipt_col_remaining_sum": "Qolgan summa",
    "receipt_remaining_short": "Qolgan",
    "receipt_generated": "Hujjat tuzildi",
    "receipt_balance_before": "Yuborishdan oldingi balans",
    "receipt_shipment_amount": "Yuklama summasi",
    "receipt_left_to_pay": "Qolgan to'lov",
    "receipt_balance_after": "Yakuniy balans",
}

_UZC: dict[str, str] = {
    "welcome": "👋 Ассалому алайкум, {name}! Рўйхатдан ўтиш учун телефон рақамингизни юборинг.",
    "already_registered": "👋 Хуш келибсиз, {name}! Буюртма бериш учун дўконни очинг.",
    "help": (
        "ℹ️ Буйруқлар:\n"
        "/start — бошлаш\n"
        "/balance — баланс\n"
        "/orders — буюртмаларим\n"
        "/lang — тилни ўзгартириш\n"
        "/help — ёрдам"
    ),
    "register_prompt": "📱 Давом этиш учун рўйхатдан ўтинг: пастдаги тугма орқали телефон рақамингизни юборинг.",
    "share_contact_button": "📱 Рақамни юбориш",
    "open_shop_button": "🛍 Дўконни очиш",
    "registered": "✅ Рўйхатдан ўтдингиз! Энди буюртма беришингиз мумкин.",
    "contact_self_only": "⚠️ Илтимос, фақат ўзингизнинг рақамингизни юборинг.",
    "language_changed": "✅ Тил ўзгартирилди.",
    "menu_hint": "Қуйидаги менюдан фойдаланинг.",
    "menu_balance": "💰 Баланс",
    "menu_orders": "📦 Буюртмаларим",
    "menu_help": "ℹ️ Ёрдам",
    "menu_language": "🌐 Тил",
    "menu_settings": "⚙️ Созламалар",
    "balance": "💰 Балансингиз: {amount}",
    "balance_unavailable": "⚠️ Балансни ҳозирча олиб бўлмади. Кейинроқ уриниб кўринг.",
    "no_orders": "📭 Сизда ҳали буюртмалар йўқ.",
    "orders_title": "📦 Охирги буюртмаларингиз:",
    "generic_error": "⚠️ Кутилмаган хатолик юз берди. Илтимос, кейинроқ уриниб кўринг.",
    "counterparty_deleted": "⚠️ Ҳисобингиз тизимдан ўчирилди. Илтимос, /start орқали қайта рўйхатдан ўтинг.",
    "draft_ready": "🛒 Саватингиз тайёр. Қабул қилиш усулини танланг:",
    "cart_empty": "🛒 Саватингиз бўш. Аввал дўкондан маҳсулот танланг.",
    "no_valid_items": "⚠️ Танланган маҳсулотлар дўконда топилмади.",
    "choose_delivery": "🚚 Илтимос, қабул қилиш усулини танланг:",
    "needs_address": "📍 Илтимос, етказиб бериш манзилини юборинг.",
    "not_registered": "📱 Буюртма бериш учун аввал рўйхатдан ўтинг: /start",
    "pickup": "🏪 Ўзи олиб кетиш",
    "delivery": "🚚 Етказиб бериш",
    "send_address": "📍 Етказиб бериш манзилини юборинг: локацияни улашинг ёки манзилни ёзинг.",
    "send_address_with_saved": "📍 Етказиб бериш манзилини юборинг ёки сақланган манзилдан фойдаланинг.",
    "send_location_button": "📍 Локацияни юбориш",
    "use_saved": "🏠 Сақланган манзил: {address}",
    "location_saved": "✅ Манзил сақланди.",
    "order_summary_title": "🧾 Буюртмангиз:",
    "confirm_question": "Буюртмани тасдиқлайсизми?",
    "confirm_button": "✅ Тасдиқлаш",
    "cancel_button": "❌ Бекор қилиш",
    "order_received": "📝 Буюртма қабул қилинди.",
    "order_cancelled": "❌ Буюртма бекор қилинди.",
    "order_failed": "⚠️ Буюртмани юбориб бўлмади. Саватингиз сақланди, илтимос қайта уриниб кўринг.",
    "pdf_unavailable": "⚠️ Ҳужжатни ҳозирча тайёрлаб бўлмади.",
    "label_total": "Жами",
    "label_delivery": "Топшириш",
    "label_delivery_type": "Топшириш тури",
    "label_address": "Манзил",
    "label_delivery_address": "Етказиб бериш манзили",
    "label_location": "Локация",
    "label_note": "Изоҳ",
    "label_status": "Ҳолат",
    "label_new_status": "Янги ҳолат",
    "label_due": "Қолган тўлов",
    "label_paid": "Тўланган",
    "label_items": "Маҳсулотлар",
    "label_driver_model": "Машина модели",
    "label_driver_number": "Машина рақами",
    "label_client": "Мижоз",
    "label_phone": "Телефон",
    "label_type": "Тури",
    "label_amount": "Сумма",
    "label_balance": "Балансингиз",
    "label_apartment": "Квартира",
    "label_entrance": "Кириш",
    "label_floor": "Қават",
    "label_intercom": "Домофон рақами",
    "delivery_pickup": "🏪 Ўзи олиб кетиш",
    "delivery_delivery": "🚚 Етказиб бериш",
    "delivery_unknown": "Кўрсатилмаган",
    "map_button": "🗺 Картада очиш",
    "pdf_button": "📄 PDF",
    "order_created": "✅ Сиз учун {name} рақамли буюртма яратилди.",
    "order_updated": "🔄 Буюртмангиз {name} янгиланди.",
    "shipment_created": "📦 Йўлга чиқариш ҳужжати яратилди: {name}",
    "shipment_updated": "🔄 Йўлга чиқариш ҳужжати {name} янгиланди.",
    "payment_received": "💰 Тўловингиз қабул қилинди!",
    "payment_cash": "Нақд пул",
    "payment_bank": "Банк ўтказмаси",
    "admin_new_order": "🛒 Янги буюртма: {name}",
    "admin_order_updated": "🔄 Буюртма {name} янгиланди",
    "admin_new_shipment": "📦 Янги йўлга чиқариш ҳужжати: {name}",
    "admin_new_payment": "💰 Янги тўлов!",
    "admin_new_user": "👤 Янги фойдаланувчи: {name}",
    "not_admin": "⛔ Бу буйруқ фақат администраторлар учун.",
    "admin_title": "⚙️ Билдиришнома созламалари. Керакли турларни белгиланг ва сақланг:",
    "admin_saved": "✅ Созламалар сақланди.",
    "admin_discarded": "Созламалар ўзгартирилмади.",
    "admin_save": "💾 Сақлаш",
    "admin_cancel": "↩️ Орқага",
    "pref_new_user": "Янги фойдаланувчилар",
    "pref_new_order": "Янги буюртмалар",
    "pref_order_update": "Буюртма янгиланишлари",
    "pref_payment": "Тўловлар",
    "reminder_followup": "Буюртмангиздан мамнунмисиз? Яна буюртма беришга тайёрмисиз? 🛒",
    "debt_reminder": "⚠️ Эслатма: қарздорлигингиз {amount}. Илтимос, тўловни амалга оширинг.",
    "report_daily_title": "📊 Кунлик ҳисобот ({date})",
    "report_weekly_title": "📊 Ҳафталик ҳисобот ({start} — {end})",
    "report_orders": "🛒 Буюртмалар: {count}",
    "report_revenue": "💵 Тушум: {amount}",
    "report_new_users": "👤 Янги мижозлар: {count}",
    "report_top_products": "🏆 Энг кўп сотилганлар:",
    "report_no_sales": "Сотувлар йўқ",
    "receipt_doc_type": "ЖЎНАТИЛДИ",
    "receipt_client": "Мижоз",
    "receipt_name": "Исм",
    "receipt_col_name": "Номи",
    "receipt_col_qty": "Миқдор",
    "receipt_col_price": "Нарх",
    "receipt_col_total": "Жами",
    "receipt_col_remaining_qty": "Қолди",
    "receipt_col_remaining_sum": "Қолган сумма",
    "receipt_remaining_short": "Қолган",
    "receipt_generated": "Ҳужжат тузилди",
    "receipt_balance_before": "Юборишдан олдинги баланс",
    "receipt_shipment_amount": "Юклама суммаси",
    "receipt_left_to_pay": "Қолган тўлов",
    "receipt_balance_after": "Якуний баланс",
}

_RU: dict[str, str] = {
    "welcome": "👋 Здравствуйте, {name}! Для регистрации отправьте свой номер телефона.",
    "already_registered": "👋 С возвращением, {name}! Откройте магазин, чтобы оформить заказ.",
    "help": (
        "ℹ️ Команды:\n"
        "/start — начать\n"
        "/balance — баланс\n"
        "/orders — мои заказы\n"
        "/lang — сменить язык\n"
        "/help — помощь"
    ),
    "register_prompt": "📱 Чтобы продолжить, зарегистрируйтесь: отправьте номер телефона кнопкой ниже.",
    "share_contact_button": "📱 Отправить номер",
    "open_shop_button": "🛍 Открыть магазин",
    "registered": "✅ Вы зарегистрированы! Теперь можно оформлять заказы.",
    "contact_self_only": "⚠️ Пожалуйста, отправьте только свой собственный номер.",
    "language_changed": "✅ Язык изменён.",
    "menu_hint": "Воспользуйтесь меню ниже.",
    "menu_balance": "💰 Баланс",
    "menu_orders": "📦 Мои заказы",
    "menu_help": "ℹ️ Помощь",
    "menu_language": "🌐 Язык",
    "menu_settings": "⚙️ Настройки",
    "balance": "💰 Ваш баланс: {amount}",
    "balance_unavailable": "⚠️ Не удалось получить баланс. Попробуйте позже.",
    "no_orders": "📭 У вас пока нет заказов.",
    "orders_title": "📦 Ваши последние заказы:",
    "generic_error": "⚠️ Произошла непредвиденная ошибка. Пожалуйста, попробуйте позже.",
    "counterparty_deleted": "⚠️ Ваш аккаунт был удалён из системы. Пожалуйста, зарегистрируйтесь заново через /start.",
    "draft_ready": "🛒 Корзина готова. Выберите способ получения:",
    "cart_empty": "🛒 Корзина пуста. Сначала выберите товары в магазине.",
    "no_valid_items": "⚠️ Выбранные товары не найдены в магазине.",
    "choose_delivery": "🚚 Пожалуйста, выберите способ получения:",
    "needs_address": "📍 Пожалуйста, отправьте адрес доставки.",
    "not_registered": "📱 Чтобы оформить заказ, сначала зарегистрируйтесь: /start",
    "pickup": "🏪 Самовывоз",
    "delivery": "🚚 Доставка",
    "send_address": "📍 Отправьте адрес доставки: поделитесь геолокацией или напишите адрес.",
    "send_address_with_saved": "📍 Отправьте адрес доставки или используйте сохранённый адрес.",
    "send_location_button": "📍 Отправить геолокацию",
    "use_saved": "🏠 Сохранённый адрес: {address}",
    "location_saved": "✅ Адрес сохранён.",
    "order_summary_title": "🧾 Ваш заказ:",
    "confirm_question": "Подтвердить заказ?",
    "confirm_button": "✅ Подтвердить",
    "cancel_button": "❌ Отменить",
    "order_received": "📝 Заказ получен.",
    "order_cancelled": "❌ Заказ отменён.",
    "order_failed": "⚠️ Не удалось отправить заказ. Корзина сохранена, попробуйте ещё раз.",
    "pdf_unavailable": "⚠️ Не удалось подготовить документ.",
    "label_total": "Сумма",
    "label_delivery": "Доставка",
    "label_delivery_type": "Тип доставки",
    "label_address": "Адрес",
    "label_delivery_address": "Адрес доставки",
    "label_location": "Геолокация",
    "label_note": "Комментарий",
    "label_status": "Статус",
    "label_new_status": "Новый статус",
    "label_due": "Осталось оплатить",
    "label_paid": "Оплачено",
    "label_items": "Товары",
    "label_driver_model": "Модель машины",
    "label_driver_number": "Номер машины",
    "label_client": "Клиент",
    "label_phone": "Телефон",
    "label_type": "Тип",
    "label_amount": "Сумма",
    "label_balance": "Баланс",
    "label_apartment": "Квартира",
    "label_entrance": "Подъезд",
    "label_floor": "Этаж",
    "label_intercom": "Домофон",
    "delivery_pickup": "🏪 Самовывоз",
    "delivery_delivery": "🚚 Доставка",
    "delivery_unknown": "Не указано",
    "map_button": "🗺 Открыть на карте",
    "pdf_button": "📄 PDF",
    "order_created": "✅ Ваш заказ {name} создан.",
    "order_updated": "🔄 Ваш заказ {name} обновлён.",
    "shipment_created": "📦 Отгрузка создана: {name}",
    "shipment_updated": "🔄 Отгрузка {name} обновлена.",
    "payment_received": "💰 Ваш платёж принят!",
    "payment_cash": "Наличные",
    "payment_bank": "Безнал",
    "admin_new_order": "🛒 Новый заказ: {name}",
    "admin_order_updated": "🔄 Заказ {name} обновлён",
    "admin_new_shipment": "📦 Новая отгрузка: {name}",
    "admin_new_payment": "💰 Новый платёж!",
    "admin_new_user": "👤 Новый пользователь: {name}",
    "not_admin": "⛔ Эта команда доступна только администраторам.",
    "admin_title": "⚙️ Настройки уведомлений. Отметьте нужные типы и сохраните:",
    "admin_saved": "✅ Настройки сохранены.",
    "admin_discarded": "Настройки не изменены.",
    "admin_save": "💾 Сохранить",
    "admin_cancel": "↩️ Назад",
    "pref_new_user": "Новые пользователи",
    "pref_new_order": "Новые заказы",
    "pref_order_update": "Обновления заказов",
    "pref_payment": "Платежи",
    "reminder_followup": "Довольны ли вы заказом? Готовы заказать снова? 🛒",
    "debt_reminder": "⚠️ Напоминание: ваша задолженность {amount}. Пожалуйста, произведите оплату.",
    "report_daily_title": "📊 Ежедневный отчёт ({date})",
    "report_weekly_title": "📊 Недельный отчёт ({start} — {end})",
    "report_orders": "🛒 Заказы: {count}",
    "report_revenue": "💵 Выручка: {amount}",
    "report_new_users": "👤 Новые клиенты: {count}",
    "report_top_products": "🏆 Топ товаров:",
    "report_no_sales": "Продаж нет",
    "receipt_doc_type": "ОТГРУЗКА",
    "receipt_client": "Клиент",
    "receipt_name": "Имя",
    "receipt_col_name": "Наименование",
    "receipt_col_qty": "Кол-во",
    "receipt_col_price": "Цена",
    "receipt_col_total": "Сумма",
    "receipt_col_remaining_qty": "Остаток",
    "receipt_col_remaining_sum": "Остаток суммы",
    "receipt_remaining_short": "Осталось",
    "receipt_generated": "Документ сформирован",
    "receipt_balance_before": "Баланс до отгрузки",
    "receipt_shipment_amount": "Сумма отгрузки",
    "receipt_left_to_pay": "Осталось к оплате",
    "receipt_balance_after": "Итоговый баланс",
}

_TABLES = {"uz": _UZ, "uzc": _UZC, "ru": _RU}

_CURRENCY_LABELS: dict[str, dict[str, str]] = {
    "UZS": {"uz": "So'm", "uzc": "Сўм", "ru": "сум"},
    "RUB": {"uz": "rubl", "uzc": "руб.", "ru": "руб."},
    "USD": {"uz": "USD", "uzc": "USD", "ru": "USD"},
    "EUR": {"uz": "EUR", "uzc": "EUR", "ru": "EUR"},
}


def normalize_language(lang: str | None) -> str:
    return lang if lang in _TABLES else DEFAULT_LANGUAGE


def translate(lang: str | None, key: str, **kwargs: object) -> str:
    """Look up *key* for *lang*, falling back to Uzbek, then to the key itself."""
    table = _TABLES.get(normalize_language(lang), _UZ)
    template = table.get(key) or _UZ.get(key)
    if template is None:
        logger.warning("Missing translation key %r", key)
        return key
    return template.format(**kwargs) if kwargs else template


def matches_any_language(text: str, key: str) -> bool:
    """True if *text* equals the translation of *key* in any language."""
    return any(text == table.get(key, _UZ.get(key)) for table in _TABLES.values())


# ── Number formatting ────────────────────────────────────


def currency_label(code: str | None, lang: str | None) -> str:
    if not code:
        return ""
    labels = _CURRENCY_LABELS.get(code.upper())
    if labels is None:
        return code
    return labels[normalize_language(lang)]


def format_amount(amount: Decimal) -> str:
    """``Decimal("1500")`` → ``"1 500,00"`` (space thousands, comma decimals)."""
    rounded = round2(amount)
    sign = "-" if rounded < 0 else ""
    text = f"{abs(rounded):,.2f}".replace(",", " ").replace(".", ",")
    return sign + text


def format_money(amount: Decimal, currency: str | None, lang: str | None) -> str:
    label = currency_label(currency, lang)
    text = format_amount(amount)
    return f"{text} {label}" if label else text


def format_quantity(quantity: Decimal | int | float) -> str:
    """Whole quantities without decimals, fractional ones with two."""
    value = round2(Decimal(str(quantity)))
    if value == value.to_integral_value():
        return str(int(value))
    return f"{value:.2f}"
